import logging

from fastapi import Header, HTTPException, Request

from app.core.config import settings
from app.core.database import supabase
from app.services.cache_service import PollCache

logger = logging.getLogger(__name__)


def get_poll_cache(request: Request) -> PollCache:
    """The cache built during app startup."""
    return request.app.state.poll_cache


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.removeprefix("Bearer ").strip() or None


async def get_current_user_id(authorization: str = Header(None)) -> str:
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")
    if not response or not response.user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(response.user.id)


async def verify_admin_secret(authorization: str = Header(None)):
    expected = settings.CACHE_ADMIN_SECRET
    if not expected or _bearer_token(authorization) != expected:
        raise HTTPException(status_code=401, detail="Invalid admin secret")
