from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError
from survivor_pool.models.models import Player
from survivor_pool.schemas.episodes import (
    ContestantEventResponse, EpisodeCreate, EpisodeResponse, EventDeletedResponse,
    EventsRecordedResponse, EventsSubmit, EventTypeResponse,
)
from survivor_pool.api.deps import (
    commit_and_invalidate, get_current_player, get_leaderboard_cache, require_admin,
    to_http_exception,
)
from survivor_pool.services.episodes import create_episode, list_episodes, set_current_episode
from survivor_pool.services.event_type_seeder import list_event_types
from survivor_pool.services.events import delete_event, list_episode_events, record_events
from survivor_pool.services.leaderboard_cache import LeaderboardCache

router = APIRouter(prefix="/api", tags=["Episodes"])


@router.get("/event-types", response_model=list[EventTypeResponse])
async def get_event_types(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await list_event_types(db, active_only=active_only)


@router.get("/episodes", response_model=list[EpisodeResponse])
async def get_episodes(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await list_episodes(db)


@router.post("/episodes", response_model=EpisodeResponse, status_code=201)
async def add_episode(
    body: EpisodeCreate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        episode = await create_episode(db, body.episode_number, body.aired_date, body.is_current)
    except EngineError as e:
        raise to_http_exception(e)
    # A new current episode moves bonuses and compensation
    await commit_and_invalidate(db, cache)
    return episode


@router.post("/episodes/{episode_id}/set-current", response_model=EpisodeResponse)
async def make_current_episode(
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        episode = await set_current_episode(db, episode_id)
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return episode


@router.get("/episodes/{episode_id}/events", response_model=list[ContestantEventResponse])
async def get_episode_events(
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    try:
        return await list_episode_events(db, episode_id)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/episodes/{episode_id}/events", response_model=EventsRecordedResponse, status_code=201)
async def add_episode_events(
    episode_id: int,
    body: EventsSubmit,
    db: AsyncSession = Depends(get_db),
    admin: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await record_events(
            db, episode_id, [e.model_dump() for e in body.events], created_by=admin.id
        )
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return result


@router.delete("/episodes/{episode_id}/events/{event_id}", response_model=EventDeletedResponse)
async def remove_episode_event(
    episode_id: int,
    event_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await delete_event(db, episode_id, event_id)
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return result
