from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
import logging
import time

from app.models.user import User
from app.core.config import settings
from app.core.errors import Forbidden, NotFound, ValidationFailed
from app.services.auth import get_current_user
from app.services.file import InvalidUpload, validate_image_upload
from app.services.ratelimit import rate_limit_ip, rate_limit_user
from app.services.storage import ObjectStorage, StorageError, get_storage

logger = logging.getLogger(__name__)
router = APIRouter()

class ImageUploadRequest(BaseModel):
    file_name: str
    file_type: str
    file_size: int

class ImageUploadResponse(BaseModel):
    upload_url: str
    file_url: str  # proxied URL of the object
    object_url: str

@router.post(
    "/images/upload",
    response_model=ImageUploadResponse,
    dependencies=[Depends(rate_limit_user("upload_image"))]
)
async def create_image_upload(
    request: Request,
    upload: ImageUploadRequest,
    current_user: User = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_storage)
):
    """Issue a short-lived presigned PUT URL for a preview image"""
    try:
        safe_file_name = validate_image_upload(
            upload.file_name, upload.file_type, upload.file_size, settings.MAX_IMAGE_SIZE
        )
    except InvalidUpload as e:
        logger.warning(f"Rejected image upload from {current_user.id}: {str(e)}")
        raise ValidationFailed(str(e))

    file_key = f"images/{current_user.id}/{int(time.time() * 1000)}-{safe_file_name}"
    upload_url = storage.presign_upload(
        file_key,
        content_type=upload.file_type,
        filename=safe_file_name,
        metadata={
            "userId": current_user.id,
            "originalName": upload.file_name,
            "mimeType": upload.file_type
        }
    )

    object_url = storage.public_url(file_key)
    file_url = request.url_for("proxy_image").include_query_params(url=object_url)
    return ImageUploadResponse(upload_url=upload_url, file_url=str(file_url), object_url=object_url)

@router.get("/images", dependencies=[Depends(rate_limit_ip("image_proxy"))])
async def proxy_image(
    url: str = Query(..., min_length=1),
    storage: ObjectStorage = Depends(get_storage)
):
    """Stream an object from the bucket. Product files are never served here."""
    try:
        file_key = storage.key_from_url(url)
    except ValueError:
        raise ValidationFailed("Invalid URL")

    if file_key.lower().endswith(settings.PRODUCT_FILE_EXTENSION):
        raise Forbidden("Forbidden file type")

    try:
        image = await storage.get_object(file_key)
    except StorageError as e:
        logger.error(f"Image proxy error for {file_key}: {str(e)}")
        raise NotFound("Image not found")

    return StreamingResponse(
        image["body"],
        media_type=image["content_type"] or "image/jpeg",
        headers={"Cache-Control": "public, max-age=31536000, immutable"}
    )
