import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.routers.deps import get_poll_cache, verify_admin_secret
from app.services.cache_service import PollCache

router = APIRouter(prefix="/api/system", tags=["system"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def system_health(cache: PollCache = Depends(get_poll_cache)):
    """Cache status and stats. 503 when the cache backend is down."""
    healthy = await cache.health_check()
    stats = await cache.get_cache_stats() if healthy else {}
    body = {
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "cache": {"status": "up" if healthy else "down", "stats": stats},
        },
    }
    return JSONResponse(body, status_code=200 if healthy else 503)


@router.post("/cache/flush", dependencies=[Depends(verify_admin_secret)])
async def flush_poll_cache(cache: PollCache = Depends(get_poll_cache)):
    """Drop every cached poll and poll list, e.g. after a bulk import."""
    await cache.invalidate_all_polls()
    logger.info("Poll cache flushed")
    return {"status": "ok"}
