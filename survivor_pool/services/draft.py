"""
Draft Allocator: one-time snake draft from submitted rankings.

The DraftStatus row is the only lock in the engine. Flipping it, checking
rankings and writing the picks all happen inside one SAVEPOINT, so a failed
draft leaves neither the lock held nor any partial picks behind.
"""

import logging
import random
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func

from survivor_pool.core.config import get_settings
from survivor_pool.core.errors import (
    ConflictError, DraftAlreadyRunError, InvalidRankingsError,
    MissingRankingsError, NotFoundError, PreconditionError,
)
from survivor_pool.models.models import Contestant, DraftPick, DraftStatus, Player, Ranking
from survivor_pool.services.episodes import get_current_episode_number
from survivor_pool.services.sole_survivor import open_initial_selection

logger = logging.getLogger(__name__)

DRAFT_STATUS_ID = 1


# --- Rankings ---

async def submit_rankings(
    db: AsyncSession,
    player_id: int,
    rankings: list[dict],
    sole_survivor_id: int,
) -> dict:
    """
    Store a player's full contestant ordering and their initial sole survivor.

    rankings: [{"contestant_id": int, "rank": int | None}, ...]. A missing
    rank means "position in the list". Every contestant must appear exactly
    once; the sole survivor may be left out since the draft skips it anyway.
    """
    if not rankings:
        raise InvalidRankingsError("Rankings array is required")
    if sole_survivor_id is None:
        raise InvalidRankingsError("Sole survivor pick is required")

    player_result = await db.execute(select(Player).where(Player.id == player_id))
    player = player_result.scalar_one_or_none()
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")
    if player.has_submitted_rankings:
        raise ConflictError("Rankings already submitted")

    status = await get_draft_status_row(db)
    if status is not None and status.is_complete:
        raise ConflictError("Draft has already been completed")

    contestant_result = await db.execute(select(Contestant.id))
    contestant_ids = {row[0] for row in contestant_result.all()}

    ranked_ids = [r["contestant_id"] for r in rankings]
    if len(set(ranked_ids)) != len(ranked_ids):
        raise InvalidRankingsError("Duplicate contestants in rankings")

    unknown = set(ranked_ids) - contestant_ids
    if unknown:
        raise InvalidRankingsError(f"Unknown contestants in rankings: {sorted(unknown)}")

    if sole_survivor_id not in contestant_ids:
        raise InvalidRankingsError("Invalid sole survivor contestant")

    unranked = contestant_ids - set(ranked_ids) - {sole_survivor_id}
    if unranked:
        raise InvalidRankingsError("All contestants must be ranked")

    rows = [
        (r["contestant_id"], r.get("rank") if r.get("rank") is not None else index + 1)
        for index, r in enumerate(rankings)
    ]
    ranks = [rank for _, rank in rows]
    if len(set(ranks)) != len(ranks):
        raise InvalidRankingsError("Duplicate rank values in rankings")

    # Clear any partial submission
    await db.execute(delete(Ranking).where(Ranking.player_id == player_id))
    db.add_all([
        Ranking(player_id=player_id, contestant_id=contestant_id, rank=rank)
        for contestant_id, rank in rows
    ])

    current_episode = await get_current_episode_number(db)
    await open_initial_selection(db, player_id, sole_survivor_id, current_episode)

    player.has_submitted_rankings = True
    player.sole_survivor_id = sole_survivor_id
    await db.flush()

    return {
        "player_id": player_id,
        "rankings_count": len(rows),
        "sole_survivor_id": sole_survivor_id,
    }


async def check_all_rankings_submitted(db: AsyncSession) -> dict:
    """
    A player counts as submitted when flagged and their ranking still covers
    every contestant other than their own sole survivor.
    """
    players = (await db.execute(select(Player).order_by(Player.id))).scalars().all()
    contestant_ids = {row[0] for row in (await db.execute(select(Contestant.id))).all()}

    ranking_rows = await db.execute(select(Ranking.player_id, Ranking.contestant_id))
    ranked_by_player: dict[int, set[int]] = {}
    for player_id, contestant_id in ranking_rows.all():
        ranked_by_player.setdefault(player_id, set()).add(contestant_id)

    missing = []
    for player in players:
        needed = contestant_ids - {player.sole_survivor_id}
        ranked = ranked_by_player.get(player.id, set())
        if not player.has_submitted_rankings or not needed <= ranked:
            missing.append({"player_id": player.id, "display_name": player.display_name})

    total = len(players)
    return {
        "all_submitted": total > 0 and not missing,
        "total_players": total,
        "submitted_count": total - len(missing),
        "missing_players": missing,
    }


# --- Allocation ---

def run_snake_draft(
    player_order: list[int],
    rankings: dict[int, list[int]],
    sole_survivors: dict[int, int | None],
    picks_per_player: int = 2,
) -> list[dict]:
    """
    Snake draft over an already-shuffled player order: even rounds go
    forward, odd rounds in reverse. Each player takes their best-ranked
    contestant not yet taken and not their own sole survivor.
    """
    assigned: set[int] = set()
    picks = []

    for round_index in range(picks_per_player):
        order = player_order if round_index % 2 == 0 else list(reversed(player_order))
        for player_id in order:
            selected = None
            for contestant_id in rankings.get(player_id, []):
                if contestant_id in assigned or contestant_id == sole_survivors.get(player_id):
                    continue
                selected = contestant_id
                break

            if selected is None:
                raise PreconditionError(f"No available contestants for player {player_id}")

            assigned.add(selected)
            picks.append({
                "player_id": player_id,
                "contestant_id": selected,
                "pick_number": len(picks) + 1,
            })

    return picks


async def get_draft_status_row(db: AsyncSession) -> DraftStatus | None:
    result = await db.execute(select(DraftStatus).where(DraftStatus.id == DRAFT_STATUS_ID))
    return result.scalar_one_or_none()


async def ensure_draft_status_row(db: AsyncSession) -> None:
    if await get_draft_status_row(db) is not None:
        return
    try:
        async with db.begin_nested():
            db.add(DraftStatus(id=DRAFT_STATUS_ID, is_complete=False))
    except IntegrityError:
        # Someone else created it first
        pass


async def _load_rankings(db: AsyncSession) -> dict[int, list[int]]:
    result = await db.execute(
        select(Ranking.player_id, Ranking.contestant_id)
        .order_by(Ranking.player_id, Ranking.rank, Ranking.id)
    )
    rankings: dict[int, list[int]] = {}
    for player_id, contestant_id in result.all():
        rankings.setdefault(player_id, []).append(contestant_id)
    return rankings


async def execute_draft(db: AsyncSession, rng: random.Random | None = None) -> list[DraftPick]:
    """
    Run the one-time draft.

    Raises:
        DraftAlreadyRunError: the lock was already taken (a conflict, not bad input)
        MissingRankingsError: someone hasn't submitted; the lock is released
    """
    settings = get_settings()
    rng = rng or random.SystemRandom()

    await ensure_draft_status_row(db)

    async with db.begin_nested():
        flipped = await db.execute(
            update(DraftStatus)
            .where(DraftStatus.id == DRAFT_STATUS_ID, DraftStatus.is_complete == False)
            .values(is_complete=True, completed_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            raise DraftAlreadyRunError()

        ranking_status = await check_all_rankings_submitted(db)
        if not ranking_status["all_submitted"]:
            raise MissingRankingsError(
                ranking_status["missing_players"], ranking_status["total_players"]
            )

        players = (await db.execute(select(Player).order_by(Player.id))).scalars().all()
        player_order = [p.id for p in players]
        sole_survivors = {p.id: p.sole_survivor_id for p in players}
        rng.shuffle(player_order)

        allocated = run_snake_draft(
            player_order, await _load_rankings(db), sole_survivors, settings.picks_per_player
        )

        picks = [
            DraftPick(
                player_id=p["player_id"],
                contestant_id=p["contestant_id"],
                pick_number=p["pick_number"],
                start_episode=1,
                end_episode=None,
                is_replacement=False,
            )
            for p in allocated
        ]
        db.add_all(picks)
        await db.flush()

    logger.info("Draft complete: %s picks for %s players", len(picks), len(player_order))
    return picks


async def get_draft_status(db: AsyncSession) -> dict:
    await ensure_draft_status_row(db)
    status = await get_draft_status_row(db)
    # The status row may have been loaded before the draft flipped it
    await db.refresh(status)

    pick_count = (await db.execute(
        select(func.count()).select_from(DraftPick).where(DraftPick.is_replacement == False)
    )).scalar()
    ranking_status = await check_all_rankings_submitted(db)

    return {
        "is_complete": status.is_complete,
        "completed_at": status.completed_at,
        "pick_count": pick_count or 0,
        "total_players": ranking_status["total_players"],
        "submitted_count": ranking_status["submitted_count"],
        "missing_players": ranking_status["missing_players"],
    }
