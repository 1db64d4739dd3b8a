"""Admin gate for the moderation endpoints."""
import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException

from ochat.core.config import settings

logger = logging.getLogger(__name__)


def is_admin_password(candidate: Optional[str]) -> bool:
    if not candidate or not settings.ADMIN_PASSWORD:
        return False
    return secrets.compare_digest(candidate.encode("utf-8"), settings.ADMIN_PASSWORD.encode("utf-8"))


async def require_admin(x_admin_password: Optional[str] = Header(default=None)) -> None:
    """Dependency that checks the ``X-Admin-Password`` header.

    Raises:
        HTTPException: 404 if the password is missing or wrong (security through obscurity)
    """
    if not is_admin_password(x_admin_password):
        logger.warning("Rejected admin request with missing or wrong password")
        raise HTTPException(status_code=404, detail="Not Found")
