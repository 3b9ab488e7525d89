from fastapi import APIRouter, Depends, HTTPException

from app.models.schemas import ProfileUpdate
from app.routers.deps import get_current_user_id, get_poll_cache
from app.services import poll_service
from app.services.cache_service import PollCache

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}")
async def get_profile(user_id: str, cache: PollCache = Depends(get_poll_cache)):
    profile = await poll_service.get_user_profile(cache, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": profile}


@router.patch("/me")
async def update_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    cache: PollCache = Depends(get_poll_cache),
):
    profile = await poll_service.update_user_profile(cache, user_id, body)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": profile}
