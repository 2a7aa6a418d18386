import os
import re
from typing import Dict, List

ALLOWED_IMAGE_TYPES: Dict[str, List[str]] = {
    "image/png": [".png"],
    "image/jpeg": [".jpg", ".jpeg"],
    "image/webp": [".webp"],
    "image/gif": [".gif"],
}

class InvalidUpload(ValueError):
    pass

def sanitize_filename(filename: str, extension: str) -> str:
    """Keep only [A-Za-z0-9-_] from the base name and re-append the extension"""
    base = os.path.basename(filename)
    if base.lower().endswith(extension):
        base = base[: -len(extension)]
    base = re.sub(r"[^a-zA-Z0-9\-_]", "", base)
    return f"{base or 'image'}{extension}"

def validate_image_upload(file_name: str, file_type: str, file_size: int, max_size: int) -> str:
    """Validate an image upload request and return the sanitized file name.

    The extension must be one of those registered for the declared MIME
    type, so a script cannot be uploaded as ``image/png``.
    """
    if not file_size or file_size <= 0 or file_size > max_size:
        raise InvalidUpload(f"File too large (max {max_size // (1024 * 1024)}MB)")

    allowed_extensions = ALLOWED_IMAGE_TYPES.get(file_type)
    if not allowed_extensions:
        raise InvalidUpload(f"File type not allowed: {file_type}")

    extension = os.path.splitext(file_name)[1].lower()
    if extension not in allowed_extensions:
        raise InvalidUpload("Invalid file extension for the provided file type")

    return sanitize_filename(file_name, extension)
