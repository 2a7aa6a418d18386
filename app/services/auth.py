from jose import JWTError, jwt
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from pymongo.errors import DuplicateKeyError

from app.models.user import User
from app.db.session import get_db
from app.core.config import settings
from app.core.errors import Unauthorized, Forbidden

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

def decode_token(token: str) -> dict:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    if payload.get("sub") is None:
        raise JWTError("Token has no subject")
    return payload

async def sync_user(db, claims: dict) -> dict:
    """Return the stored user for the token subject, creating it on first sight.

    The auth provider owns identities; the local record only mirrors profile
    fields. A record with the same email is re-linked to the new subject.
    """
    user_id = claims["sub"]
    user = await db.users.find_one({"id": user_id})
    if user:
        return user

    profile = {
        "email": claims.get("email"),
        "username": claims.get("username"),
        "first_name": claims.get("first_name"),
        "last_name": claims.get("last_name"),
        "image_url": claims.get("image_url") or "",
    }

    if profile["email"]:
        existing = await db.users.find_one({"email": profile["email"]})
        if existing:
            logger.info(f"Re-linking user {existing['id']} to subject {user_id}")
            await db.users.update_one(
                {"id": existing["id"]},
                {"$set": {"id": user_id, **profile}}
            )
            return await db.users.find_one({"id": user_id})

    logger.info(f"Creating local user for subject {user_id}")
    user_obj = User(id=user_id, **profile)
    try:
        await db.users.insert_one(user_obj.model_dump())
    except DuplicateKeyError:
        # A concurrent request for the same subject created it first
        return await db.users.find_one({"id": user_id})
    return user_obj.model_dump()

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> User:
    if credentials is None:
        raise Unauthorized()
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        raise Unauthorized()

    user = await sync_user(get_db(request), claims)

    if user.get("is_banned"):
        raise Forbidden("Account suspended")

    return User(**user)

async def get_current_user_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[User]:
    if credentials is None:
        return None
    try:
        claims = decode_token(credentials.credentials)
    except JWTError:
        return None

    user = await get_db(request).users.find_one({"id": claims["sub"]})
    if user is None or user.get("is_banned"):
        return None

    return User(**user)

async def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != "admin":
        raise Forbidden("Admin access required")
    return current_user
