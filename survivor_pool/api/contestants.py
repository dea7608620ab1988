from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError
from survivor_pool.models.models import Player
from survivor_pool.schemas.contestants import (
    ContestantEpisodeScoresResponse, ContestantResponse,
    ContestantUpdate, ContestantUpdateResponse,
)
from survivor_pool.api.deps import (
    commit_and_invalidate, get_current_player, get_leaderboard_cache, require_admin,
    to_http_exception,
)
from survivor_pool.services.episode_scoring import (
    calculate_contestant_trends, get_contestant_episode_scores, get_contestant_season_total,
    get_contestant_trend,
)
from survivor_pool.services.events import (
    get_contestant_or_raise, list_contestants, update_contestant,
)
from survivor_pool.services.leaderboard_cache import LeaderboardCache

router = APIRouter(prefix="/api/contestants", tags=["Contestants"])


@router.get("", response_model=list[ContestantResponse])
async def get_contestants(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    contestants = await list_contestants(db)
    trends = await calculate_contestant_trends(db, [c.id for c in contestants])
    return [
        ContestantResponse.model_validate(c).model_copy(update={"trend": trends[c.id]})
        for c in contestants
    ]


@router.patch("/{contestant_id}", response_model=ContestantUpdateResponse)
async def patch_contestant(
    contestant_id: int,
    body: ContestantUpdate,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await update_contestant(db, contestant_id, body.model_dump(exclude_unset=True))
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return ContestantUpdateResponse(
        contestant=ContestantResponse.model_validate(result["contestant"]),
        elimination=result["elimination"],
    )


@router.get("/{contestant_id}/episode-scores", response_model=ContestantEpisodeScoresResponse)
async def contestant_episode_scores(
    contestant_id: int,
    start_episode: int = 1,
    end_episode: int | None = None,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    try:
        await get_contestant_or_raise(db, contestant_id)
    except EngineError as e:
        raise to_http_exception(e)

    return {
        "contestant_id": contestant_id,
        "total_score": await get_contestant_season_total(db, contestant_id),
        "trend": await get_contestant_trend(db, contestant_id),
        "episodes": await get_contestant_episode_scores(db, contestant_id, start_episode, end_episode),
    }
