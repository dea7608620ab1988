"""
Player Score Aggregator.

    total = draft_score
          + sole_survivor_score
          + sole_survivor_bonus
          + prediction_bonus
          + elimination_compensation

Every component is recomputed from the event log and the roster intervals;
nothing here trusts a cached total.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.core.config import get_settings
from survivor_pool.core.errors import NotFoundError
from survivor_pool.models.models import Contestant, DraftPick, Player
from survivor_pool.services.episode_scoring import (
    calculate_contestant_score_for_range, get_contestant_episode_scores,
    get_contestant_season_total,
)
from survivor_pool.services.episodes import count_episodes_between, find_current_episode_number
from survivor_pool.services.leaderboard_cache import LeaderboardCache
from survivor_pool.services.predictions import get_prediction_bonus
from survivor_pool.services.sole_survivor import calculate_sole_survivor_bonus

logger = logging.getLogger(__name__)


async def calculate_draft_score(db: AsyncSession, player_id: int) -> int:
    """Range score of every pick the player has ever held, open or closed."""
    result = await db.execute(
        select(DraftPick.contestant_id, DraftPick.start_episode, DraftPick.end_episode)
        .where(DraftPick.player_id == player_id)
    )
    total = 0
    for contestant_id, start_episode, end_episode in result.all():
        total += await calculate_contestant_score_for_range(
            db, contestant_id, start_episode, end_episode
        )
    return total


async def calculate_sole_survivor_score(db: AsyncSession, player_id: int) -> int:
    """All-time total of the player's current sole survivor."""
    result = await db.execute(select(Player.sole_survivor_id).where(Player.id == player_id))
    sole_survivor_id = result.scalar_one_or_none()
    if sole_survivor_id is None:
        return 0
    return await get_contestant_season_total(db, sole_survivor_id)


async def calculate_elimination_compensation(db: AsyncSession, player_id: int) -> int:
    """
    Open picks still holding an eliminated contestant (no replacement was
    available) earn a flat amount for every episode aired after the
    elimination.
    """
    settings = get_settings()
    current_episode = await find_current_episode_number(db)
    if current_episode is None:
        return 0

    result = await db.execute(
        select(DraftPick.id, Contestant.id, Contestant.elimination_episode)
        .join(Contestant, DraftPick.contestant_id == Contestant.id)
        .where(
            DraftPick.player_id == player_id,
            DraftPick.end_episode.is_(None),
            Contestant.is_eliminated == True,
        )
    )

    total = 0
    for pick_id, contestant_id, elimination_episode in result.all():
        if elimination_episode is None:
            logger.warning(
                "Pick %s holds eliminated contestant %s with no elimination episode",
                pick_id, contestant_id,
            )
            continue
        episodes = await count_episodes_between(db, elimination_episode, current_episode)
        total += episodes * settings.elimination_compensation_per_episode
    return total


async def calculate_player_score(db: AsyncSession, player_id: int, best_effort: bool = False) -> dict:
    """
    Full score breakdown for one player.

    With best_effort=True each component runs in its own SAVEPOINT and a
    failure counts as zero and is listed in failed_components.
    """
    result = await db.execute(select(Player.display_name).where(Player.id == player_id))
    display_name = result.scalar_one_or_none()
    if display_name is None:
        raise NotFoundError(f"Player {player_id} not found")

    async def sole_survivor_bonus():
        return (await calculate_sole_survivor_bonus(db, player_id))["total_bonus"]

    components = {
        "draft_score": lambda: calculate_draft_score(db, player_id),
        "sole_survivor_score": lambda: calculate_sole_survivor_score(db, player_id),
        "sole_survivor_bonus": sole_survivor_bonus,
        "prediction_bonus": lambda: get_prediction_bonus(db, player_id),
        "elimination_compensation": lambda: calculate_elimination_compensation(db, player_id),
    }

    breakdown = {"player_id": player_id, "display_name": display_name}
    failed = []
    for name, compute in components.items():
        if not best_effort:
            breakdown[name] = await compute()
            continue
        try:
            async with db.begin_nested():
                breakdown[name] = await compute()
        except Exception:
            logger.exception("Error calculating %s for player %s", name, player_id)
            breakdown[name] = 0
            failed.append(name)

    breakdown["total"] = sum(breakdown[name] for name in components)
    breakdown["failed_components"] = failed
    return breakdown


async def get_player_draft_pick_breakdown(db: AsyncSession, player_id: int) -> list[dict]:
    """Every pick the player has held, with its range score and per-episode scores."""
    result = await db.execute(
        select(DraftPick, Contestant.name, Contestant.is_eliminated)
        .join(Contestant, DraftPick.contestant_id == Contestant.id)
        .where(DraftPick.player_id == player_id)
        .order_by(DraftPick.pick_number, DraftPick.start_episode, DraftPick.id)
    )

    breakdown = []
    for pick, contestant_name, is_eliminated in result.all():
        breakdown.append({
            "pick_id": pick.id,
            "pick_number": pick.pick_number,
            "contestant_id": pick.contestant_id,
            "contestant_name": contestant_name,
            "is_eliminated": is_eliminated,
            "start_episode": pick.start_episode,
            "end_episode": pick.end_episode,
            "is_active": pick.end_episode is None,
            "is_replacement": pick.is_replacement,
            "replaced_contestant_id": pick.replaced_contestant_id,
            "range_score": await calculate_contestant_score_for_range(
                db, pick.contestant_id, pick.start_episode, pick.end_episode
            ),
            "episode_scores": await get_contestant_episode_scores(
                db, pick.contestant_id, pick.start_episode, pick.end_episode
            ),
        })
    return breakdown


async def get_leaderboard(db: AsyncSession, cache: LeaderboardCache | None = None) -> list[dict]:
    """
    Every player's best-effort score, sorted by total descending with ties
    broken by display name.
    """
    generation = None
    if cache is not None:
        cached = cache.get()
        if cached is not None:
            return cached
        generation = cache.generation

    result = await db.execute(select(Player.id).order_by(Player.id))
    player_ids = [row[0] for row in result.all()]

    leaderboard = []
    for player_id in player_ids:
        leaderboard.append(await calculate_player_score(db, player_id, best_effort=True))

    leaderboard.sort(key=lambda x: (-x["total"], x["display_name"]))
    for i, entry in enumerate(leaderboard, 1):
        entry["rank"] = i

    if cache is not None and not cache.set(leaderboard, generation):
        logger.info("Leaderboard changed while it was being rebuilt; not caching")
    return leaderboard
