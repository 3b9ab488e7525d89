from fastapi import APIRouter, Depends, HTTPException, Query

from app.models.schemas import PollCreate, PollFilters, PollUpdate, SortOrder, VoteCreate
from app.routers.deps import get_current_user_id, get_poll_cache
from app.services import poll_service
from app.services.cache_service import PollCache

router = APIRouter(prefix="/api/polls", tags=["polls"])


@router.get("")
async def list_polls(
    search: str | None = Query(None, max_length=100),
    sort_by: SortOrder = "newest",
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    cache: PollCache = Depends(get_poll_cache),
):
    filters = PollFilters(search=search or None, sort_by=sort_by, limit=limit, offset=offset)
    polls = await poll_service.list_polls(cache, filters)
    if polls is None:
        raise HTTPException(status_code=502, detail="Failed to fetch polls")
    return {"polls": polls, "count": len(polls)}


@router.get("/top")
async def top_polls(
    limit: int = Query(10, ge=1, le=50),
    cache: PollCache = Depends(get_poll_cache),
):
    polls = await poll_service.get_top_polls(cache, limit)
    if polls is None:
        raise HTTPException(status_code=502, detail="Failed to fetch top polls")
    return {"polls": polls}


@router.get("/{poll_id}")
async def get_poll(poll_id: str, cache: PollCache = Depends(get_poll_cache)):
    poll = await poll_service.get_poll(cache, poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    return {"poll": poll}


@router.get("/{poll_id}/analytics")
async def poll_analytics(poll_id: str, cache: PollCache = Depends(get_poll_cache)):
    analytics = await poll_service.get_poll_analytics(cache, poll_id)
    if not analytics:
        raise HTTPException(status_code=404, detail="Poll not found")
    return {"analytics": analytics}


@router.post("", status_code=201)
async def create_poll(
    body: PollCreate,
    user_id: str = Depends(get_current_user_id),
    cache: PollCache = Depends(get_poll_cache),
):
    poll = await poll_service.create_poll(cache, user_id, body)
    if not poll:
        raise HTTPException(status_code=502, detail="Failed to create poll")
    return {"poll": poll}


@router.put("/{poll_id}")
async def update_poll(
    poll_id: str,
    body: PollUpdate,
    user_id: str = Depends(get_current_user_id),
    cache: PollCache = Depends(get_poll_cache),
):
    poll = await poll_service.update_poll(cache, poll_id, user_id, body)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found or not yours")
    return {"poll": poll}


@router.delete("/{poll_id}")
async def delete_poll(
    poll_id: str,
    user_id: str = Depends(get_current_user_id),
    cache: PollCache = Depends(get_poll_cache),
):
    if not await poll_service.delete_poll(cache, poll_id, user_id):
        raise HTTPException(status_code=404, detail="Poll not found or not yours")
    return {"deleted": poll_id}


@router.post("/{poll_id}/vote", status_code=201)
async def vote(
    poll_id: str,
    body: VoteCreate,
    user_id: str = Depends(get_current_user_id),
    cache: PollCache = Depends(get_poll_cache),
):
    poll = await poll_service.get_poll(cache, poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    if not poll.get("is_active", True):
        raise HTTPException(status_code=400, detail="Poll is closed")
    if body.option_index >= len(poll.get("options") or []):
        raise HTTPException(status_code=400, detail="Invalid option index")

    try:
        updated = await poll_service.submit_vote(cache, poll_id, user_id, body.option_index)
    except poll_service.DuplicateVoteError:
        raise HTTPException(status_code=409, detail="You have already voted on this poll")
    if not updated:
        raise HTTPException(status_code=502, detail="Failed to submit vote")
    return {"poll": updated, "message": "Vote submitted successfully"}
