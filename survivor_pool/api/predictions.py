from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError
from survivor_pool.models.models import Player
from survivor_pool.schemas.episodes import EpisodeResponse
from survivor_pool.schemas.predictions import (
    PredictionLockUpdate, PredictionRecalculateResponse, PredictionResponse,
    PredictionsSubmit, PredictionStatisticsResponse,
)
from survivor_pool.api.deps import (
    commit_and_invalidate, get_current_player, get_leaderboard_cache, require_admin,
    to_http_exception,
)
from survivor_pool.services.leaderboard_cache import LeaderboardCache
from survivor_pool.services.predictions import (
    get_player_predictions, get_prediction_statistics, recalculate_prediction_scores,
    set_predictions_locked, submit_predictions,
)

router = APIRouter(prefix="/api/predictions", tags=["Predictions"])


@router.post("/episodes/{episode_id}", response_model=list[PredictionResponse], status_code=201)
async def submit_episode_predictions(
    episode_id: int,
    body: PredictionsSubmit,
    db: AsyncSession = Depends(get_db),
    current_player: Player = Depends(get_current_player),
):
    try:
        return await submit_predictions(
            db, current_player.id, episode_id, [p.model_dump() for p in body.predictions]
        )
    except EngineError as e:
        raise to_http_exception(e)


@router.get("/me", response_model=list[PredictionResponse])
async def my_predictions(
    episode_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    current_player: Player = Depends(get_current_player),
):
    return await get_player_predictions(db, current_player.id, episode_id)


@router.put("/episodes/{episode_id}/lock", response_model=EpisodeResponse)
async def lock_episode_predictions(
    episode_id: int,
    body: PredictionLockUpdate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
):
    try:
        return await set_predictions_locked(db, episode_id, body.locked)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/episodes/{episode_id}/recalculate", response_model=PredictionRecalculateResponse)
async def recalculate_episode_predictions(
    episode_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await recalculate_prediction_scores(db, episode_id)
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return result


@router.get("/statistics", response_model=PredictionStatisticsResponse)
async def prediction_statistics(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await get_prediction_statistics(db)
