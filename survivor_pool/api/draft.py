import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.core.database import get_db
from survivor_pool.core.errors import EngineError
from survivor_pool.models.models import DraftPick, Player, Ranking
from survivor_pool.schemas.draft import (
    DraftPickResponse, DraftRunResponse, DraftStatusResponse,
    RankingResponse, RankingsSubmit, RankingsSubmitResponse,
)
from survivor_pool.api.deps import (
    commit_and_invalidate, get_current_player, get_leaderboard_cache, require_admin,
    to_http_exception,
)
from survivor_pool.services.draft import execute_draft, get_draft_status, submit_rankings
from survivor_pool.services.leaderboard_cache import LeaderboardCache
from survivor_pool.services.replacement import replace_all_eliminated_draft_picks

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/draft", tags=["Draft"])


@router.get("/status", response_model=DraftStatusResponse)
async def draft_status(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    return await get_draft_status(db)


@router.post("/run", response_model=DraftRunResponse)
async def run_draft(
    db: AsyncSession = Depends(get_db),
    admin: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        picks = await execute_draft(db)
    except EngineError as e:
        logger.info("Draft run by %s rejected: %s", admin.username, e.message)
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return {"picks": picks}


@router.get("/picks", response_model=list[DraftPickResponse])
async def list_draft_picks(
    active_only: bool = False,
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(get_current_player),
):
    query = select(DraftPick).order_by(DraftPick.pick_number, DraftPick.start_episode)
    if active_only:
        query = query.where(DraftPick.end_episode.is_(None))
    result = await db.execute(query)
    return result.scalars().all()


@router.post("/fix-eliminated")
async def fix_eliminated_draft_picks(
    db: AsyncSession = Depends(get_db),
    _: Player = Depends(require_admin),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    outcome = await replace_all_eliminated_draft_picks(db)
    await commit_and_invalidate(db, cache)
    return outcome


@router.post("/rankings", response_model=RankingsSubmitResponse, status_code=201)
async def submit_my_rankings(
    body: RankingsSubmit,
    db: AsyncSession = Depends(get_db),
    current_player: Player = Depends(get_current_player),
    cache: LeaderboardCache = Depends(get_leaderboard_cache),
):
    try:
        result = await submit_rankings(
            db,
            current_player.id,
            [r.model_dump() for r in body.rankings],
            body.sole_survivor_id,
        )
    except EngineError as e:
        raise to_http_exception(e)
    await commit_and_invalidate(db, cache)
    return result


@router.get("/rankings/me", response_model=list[RankingResponse])
async def get_my_rankings(
    db: AsyncSession = Depends(get_db),
    current_player: Player = Depends(get_current_player),
):
    result = await db.execute(
        select(Ranking).where(Ranking.player_id == current_player.id).order_by(Ranking.rank)
    )
    return result.scalars().all()
