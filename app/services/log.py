from fastapi import Request
from typing import Optional
import logging

from app.models.log import ActivityLog
from app.models.user import User
from app.services.ratelimit import client_ip

logger = logging.getLogger(__name__)

async def log_activity(
    db,
    actor: User,
    action: str,
    details: str,
    target_id: Optional[str] = None,
    target_type: Optional[str] = None,
    request: Optional[Request] = None
) -> Optional[ActivityLog]:
    """Append an entry to the moderation activity log.

    Failures are logged and swallowed; the action being recorded has already
    happened and must not be reported as failed.
    """
    entry = ActivityLog(
        user_id=actor.id,
        username=actor.display_name,
        action=action,
        details=details,
        target_id=target_id,
        target_type=target_type,
        ip_address=client_ip(request) if request else None,
        user_agent=request.headers.get("user-agent", "unknown") if request else None
    )
    try:
        await db.activity_logs.insert_one(entry.model_dump())
    except Exception as e:
        logger.error(f"Failed to log activity {action} by {actor.id}: {str(e)}")
        return None
    return entry
