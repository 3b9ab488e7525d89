"""Poll data access on Supabase with read-through caching.

Cache invalidation always runs after the Supabase write has returned, never
before, so a concurrent read cannot re-cache the old row.
"""
import logging
from datetime import datetime, timezone

from app.core.database import supabase
from app.models.schemas import PollCreate, PollFilters, PollUpdate, ProfileUpdate
from app.services.cache_service import PollCache

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"

_SORT_COLUMNS = {
    "newest": ("created_at", True),
    "oldest": ("created_at", False),
    "most-voted": ("total_votes", True),
    "least-voted": ("total_votes", False),
}


class DuplicateVoteError(Exception):
    """The user already voted on this poll."""


def _vote_counts(poll: dict) -> list[int]:
    """Per-option counts, padded with zeros up to the number of options."""
    options = poll.get("options") or []
    votes = list(poll.get("votes") or [])
    if len(votes) < len(options):
        votes.extend([0] * (len(options) - len(votes)))
    return [int(v or 0) for v in votes[:len(options)]]


def _compute_analytics(poll: dict) -> dict:
    counts = _vote_counts(poll)
    total = sum(counts)
    percentages = [round(c / total * 100, 2) if total else 0.0 for c in counts]
    return {
        "poll_id": poll["id"],
        "question": poll.get("question", ""),
        "total_votes": total,
        "unique_voters": poll.get("unique_voters", total),
        "vote_distribution": {
            "options": list(poll.get("options") or []),
            "vote_counts": counts,
            "percentages": percentages,
        },
        "created_at": poll.get("created_at"),
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def _query_polls(filters: PollFilters) -> list[dict] | None:
    column, desc = _SORT_COLUMNS[filters.sort_by]
    try:
        query = (
            supabase.table("polls")
            .select("*")
            .eq("is_public", True)
            .eq("is_active", True)
        )
        if filters.search:
            # Quoted so , . : ( ) in the term are not read as filter syntax
            term = filters.search.replace("\\", " ").replace('"', " ").strip()
            query = query.or_(f'question.ilike."%{term}%",description.ilike."%{term}%"')
        response = (
            query.order(column, desc=desc)
            .range(filters.offset, filters.offset + filters.limit - 1)
            .execute()
        )
        return response.data or []
    except Exception as e:
        logger.error(f"Supabase error listing polls: {e}")
        return None


async def list_polls(cache: PollCache, filters: PollFilters) -> list[dict] | None:
    """Public active polls matching ``filters``. None when Supabase fails."""
    return await cache.fetch_polls(filters, lambda: _query_polls(filters))


async def _query_poll(poll_id: str) -> dict | None:
    try:
        response = supabase.table("polls").select("*").eq("id", poll_id).limit(1).execute()
        return response.data[0] if response.data else None
    except Exception as e:
        logger.error(f"Supabase error fetching poll {poll_id}: {e}")
        return None


async def get_poll(cache: PollCache, poll_id: str) -> dict | None:
    return await cache.fetch_poll(poll_id, lambda: _query_poll(poll_id))


async def get_poll_analytics(cache: PollCache, poll_id: str) -> dict | None:
    cached = await cache.get_poll_analytics(poll_id)
    if cached is not None:
        return cached

    poll = await get_poll(cache, poll_id)
    if not poll:
        return None
    analytics = _compute_analytics(poll)
    await cache.set_poll_analytics(poll_id, analytics)
    return analytics


async def get_top_polls(cache: PollCache, limit: int = 10) -> list[dict] | None:
    cached = await cache.get_top_polls(limit)
    if cached is not None:
        return cached
    try:
        response = (
            supabase.table("polls")
            .select("id, question, total_votes, created_at")
            .eq("is_public", True)
            .order("total_votes", desc=True)
            .limit(limit)
            .execute()
        )
    except Exception as e:
        logger.error(f"Supabase error fetching top polls: {e}")
        return None
    top = response.data or []
    await cache.set_top_polls(limit, top)
    return top


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

async def create_poll(cache: PollCache, user_id: str, data: PollCreate) -> dict | None:
    payload = {
        "question": data.question,
        "description": data.description,
        "options": data.options,
        "votes": [0] * len(data.options),
        "created_by": user_id,
        "is_public": data.is_public,
        "is_active": True,
        "allow_multiple_votes": data.allow_multiple_votes,
        "total_votes": 0,
    }
    if data.expires_at:
        payload["expires_at"] = data.expires_at.isoformat()

    try:
        response = supabase.table("polls").insert(payload).execute()
    except Exception as e:
        logger.error(f"Supabase error creating poll: {e}")
        return None
    if not response.data:
        return None

    poll = response.data[0]
    await cache.invalidate_poll_lists()
    await cache.set_poll(poll["id"], poll)
    return poll


async def update_poll(cache: PollCache, poll_id: str, user_id: str, data: PollUpdate) -> dict | None:
    """Apply ``data`` to a poll owned by ``user_id``. None if nothing matched."""
    changes = data.model_dump(exclude_none=True, mode="json")
    changes["updated_at"] = datetime.now(timezone.utc).isoformat()
    try:
        response = (
            supabase.table("polls")
            .update(changes)
            .eq("id", poll_id)
            .eq("created_by", user_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Supabase error updating poll {poll_id}: {e}")
        return None
    if not response.data:
        return None

    await cache.invalidate_poll(poll_id)
    return response.data[0]


async def delete_poll(cache: PollCache, poll_id: str, user_id: str) -> bool:
    try:
        response = (
            supabase.table("polls")
            .delete()
            .eq("id", poll_id)
            .eq("created_by", user_id)
            .execute()
        )
    except Exception as e:
        logger.error(f"Supabase error deleting poll {poll_id}: {e}")
        return False
    if not response.data:
        return False

    await cache.invalidate_poll(poll_id)
    return True


async def submit_vote(cache: PollCache, poll_id: str, user_id: str, option_index: int) -> dict | None:
    """Record a vote and return the refreshed poll.

    Raises DuplicateVoteError when the user already voted. Vote totals on the
    poll row are maintained by a database trigger, so the poll is re-read
    after the insert.
    """
    try:
        supabase.table("votes").insert({
            "poll_id": poll_id,
            "option_index": option_index,
            "voter_id": user_id,
        }).execute()
    except Exception as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            raise DuplicateVoteError(poll_id) from e
        logger.error(f"Supabase error voting on poll {poll_id}: {e}")
        return None

    await cache.invalidate_poll(poll_id)
    poll = await get_poll(cache, poll_id)
    if poll:
        await cache.set_poll_votes(poll_id, {
            "poll_id": poll_id,
            "vote_counts": _vote_counts(poll),
            "total_votes": sum(_vote_counts(poll)),
            "last_updated": datetime.now(timezone.utc).isoformat(),
        })
    return poll


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

async def _query_profile(user_id: str) -> dict | None:
    try:
        response = (
            supabase.table("profiles")
            .select("id, name, avatar, created_at")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None
    except Exception as e:
        logger.error(f"Supabase error fetching profile {user_id}: {e}")
        return None


async def get_user_profile(cache: PollCache, user_id: str) -> dict | None:
    return await cache.fetch_user(user_id, lambda: _query_profile(user_id))


async def update_user_profile(cache: PollCache, user_id: str, data: ProfileUpdate) -> dict | None:
    changes = data.model_dump(exclude_none=True)
    if not changes:
        return await get_user_profile(cache, user_id)
    try:
        response = supabase.table("profiles").update(changes).eq("id", user_id).execute()
    except Exception as e:
        logger.error(f"Supabase error updating profile {user_id}: {e}")
        return None
    if not response.data:
        return None

    await cache.invalidate_user(user_id)
    return response.data[0]
