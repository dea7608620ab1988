import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from survivor_pool.core.config import get_settings
from survivor_pool.core.database import engine, Base
from survivor_pool.api import contestants, draft, episodes, predictions, scores
from survivor_pool.services.leaderboard_cache import LeaderboardCache

# Import all models so Base.metadata is populated for create_all
import survivor_pool.models.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Idempotent; skips existing tables
    logger.info("Starting up, creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready.")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Survivor fantasy pool: snake draft, sole survivor bonuses, elimination predictions and leaderboard.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.leaderboard_cache = LeaderboardCache(settings.leaderboard_cache_ttl_seconds)

# CORS: open for now, lock down in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(draft.router)
app.include_router(contestants.router)
app.include_router(episodes.router)
app.include_router(predictions.router)
app.include_router(scores.router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
