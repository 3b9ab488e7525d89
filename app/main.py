import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import settings
from app.routers import polls, system, users
from app.services.cache_service import connect_poll_cache

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.poll_cache = await connect_poll_cache(settings)
    try:
        yield
    finally:
        await app.state.poll_cache.close()
        logger.info("Cache closed")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
app.include_router(polls.router)
app.include_router(users.router)
app.include_router(system.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/")
async def root():
    return {"message": f"{settings.PROJECT_NAME} is running"}
