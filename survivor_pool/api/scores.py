from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError
from survivor_pool.models.models import Player
from survivor_pool.schemas.scores import (
    DraftPickBreakdownItem, LeaderboardResponse, PlayerScoreResponse, RecalculateResponse,
    SoleSurvivorBonusResponse, SoleSurvivorChange, SoleSurvivorChangeResponse,
    SoleSurvivorHistoryItem,
)
from survivor_pool.api.deps import (
    commit_and_invalidate, get_current_player, get_leaderboard_cache, require_admin,
    to_http_exception,
)
from survivor_pool.services.episode_scoring import recalculate_all_contestant_scores
from survivor_pool.services.leaderboard_cache import LeaderboardCache
from survivor_pool.services.scoring import (
    calculate_player_score, get_leaderboard, get_player_draft_pick_breakdown,
)
from survivor_pool.services.sole_survivor import (
    calculate_sole_survivor_bonus, change_sole_survivor, get_sole_survivor_history,
)

router = APIRouter(prefix="/api", tags=["Scores"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    return {"entries": await get_leaderboard(db, cache)}


@router.get("/players/{player_id}/score", response_model=PlayerScoreResponse)
async def player_score(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    try:
        return await calculate_player_score(db, player_id)
    except EngineError as e:
        raise to_http_exception(e)


@router.get("/players/{player_id}/draft-picks", response_model=list[DraftPickBreakdownItem])
async def player_draft_picks(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await get_player_draft_pick_breakdown(db, player_id)


@router.get("/players/{player_id}/sole-survivor/bonus", response_model=SoleSurvivorBonusResponse)
async def sole_survivor_bonus(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await calculate_sole_survivor_bonus(db, player_id)


@router.get("/players/{player_id}/sole-survivor/history", response_model=list[SoleSurvivorHistoryItem])
async def sole_survivor_history(
    player_id: int,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await get_sole_survivor_history(db, player_id)


@router.put("/players/me/sole-survivor", response_model=SoleSurvivorChangeResponse)
async def update_my_sole_survivor(
    body: SoleSurvivorChange,
    db: AsyncSession = Depends(get_db),
    current_player: Player = Depends(get_current_player),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await change_sole_survivor(db, current_player.id, body.contestant_id)
    except EngineError as e:
        raise to_http_exception(e)
    if result["changed"]:
        await commit_and_invalidate(db, cache)
    return result


@router.post("/scores/recalculate", response_model=RecalculateResponse)
async def recalculate_scores(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    result = await recalculate_all_contestant_scores(db)
    await commit_and_invalidate(db, cache)
    return result
