"""
Sole-survivor selection history and bonus.

A player's selection is a chain of SoleSurvivorHistory records; only the
last one is open. The bonus rewards loyalty to the current selection: one
point per episode since it was made, plus a one-time winner bonus when the
pick was locked in early enough.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.core.config import get_settings
from survivor_pool.core.errors import NotFoundError, PreconditionError
from survivor_pool.models.models import Contestant, Player, SoleSurvivorHistory
from survivor_pool.services.episodes import (
    find_current_episode_number, get_current_episode_number,
)
from survivor_pool.services.replacement import plan_sole_survivor_swap, apply_sole_survivor_swap

logger = logging.getLogger(__name__)

ZERO_BONUS = {"episode_bonus": 0, "winner_bonus": 0, "total_bonus": 0, "episode_count": 0}


async def get_open_selection(db: AsyncSession, player_id: int) -> SoleSurvivorHistory | None:
    result = await db.execute(
        select(SoleSurvivorHistory)
        .where(
            SoleSurvivorHistory.player_id == player_id,
            SoleSurvivorHistory.end_episode.is_(None),
        )
        .order_by(SoleSurvivorHistory.id.desc())
    )
    return result.scalars().first()


async def calculate_sole_survivor_bonus(db: AsyncSession, player_id: int) -> dict:
    """
    Bonus for a player's current sole-survivor selection.

    episode_count = current_episode - start_episode + 1
    episode_bonus = episode_count * sole_survivor_episode_bonus
    winner_bonus  = winner_bonus if the contestant won and was picked by
                    winner_bonus_selection_deadline, else 0

    Missing selection, episode or contestant data yields the zero result;
    only storage errors propagate.
    """
    settings = get_settings()

    selection = await get_open_selection(db, player_id)
    if selection is None:
        return dict(ZERO_BONUS)

    current_episode = await find_current_episode_number(db)
    if current_episode is None:
        return dict(ZERO_BONUS)

    result = await db.execute(select(Contestant).where(Contestant.id == selection.contestant_id))
    contestant = result.scalar_one_or_none()
    if contestant is None:
        logger.warning(
            "Sole survivor contestant %s for player %s no longer exists",
            selection.contestant_id, player_id,
        )
        return dict(ZERO_BONUS)

    episode_count = max(0, current_episode - selection.start_episode + 1)
    episode_bonus = episode_count * settings.sole_survivor_episode_bonus

    winner_bonus = 0
    if contestant.is_winner and selection.start_episode <= settings.winner_bonus_selection_deadline:
        winner_bonus = settings.winner_bonus

    return {
        "episode_bonus": episode_bonus,
        "winner_bonus": winner_bonus,
        "total_bonus": episode_bonus + winner_bonus,
        "episode_count": episode_count,
    }


async def open_initial_selection(
    db: AsyncSession, player_id: int, contestant_id: int, start_episode: int
) -> SoleSurvivorHistory:
    """First selection, made alongside ranking submission."""
    selection = SoleSurvivorHistory(
        player_id=player_id,
        contestant_id=contestant_id,
        start_episode=start_episode,
        end_episode=None,
    )
    db.add(selection)
    await db.flush()
    return selection


async def change_sole_survivor(db: AsyncSession, player_id: int, contestant_id: int) -> dict:
    """
    Switch a player's sole survivor.

    The open history record is closed at the current episode before the new
    one opens there, so two records are never open at once. If the new pick is
    one of the player's own open draft picks, that pick is handed back and a
    replacement opens at the next episode; when no replacement exists the
    change is rejected before anything is written.
    """
    player_result = await db.execute(select(Player).where(Player.id == player_id))
    player = player_result.scalar_one_or_none()
    if player is None:
        raise NotFoundError(f"Player {player_id} not found")

    contestant_result = await db.execute(select(Contestant).where(Contestant.id == contestant_id))
    if contestant_result.scalar_one_or_none() is None:
        raise NotFoundError(f"Contestant {contestant_id} not found")

    current_episode = await get_current_episode_number(db)

    if player.sole_survivor_id == contestant_id:
        return {
            "changed": False,
            "player_id": player_id,
            "sole_survivor_id": contestant_id,
            "current_episode": current_episode,
            "draft_pick_swap": None,
        }

    swap_plan = await plan_sole_survivor_swap(db, player_id, contestant_id)
    if swap_plan is not None and swap_plan[1] is None:
        raise PreconditionError(
            "Contestant is one of your draft picks and no replacement is available"
        )

    open_selection = await get_open_selection(db, player_id)
    if open_selection is not None:
        open_selection.end_episode = current_episode
        await db.flush()

    await open_initial_selection(db, player_id, contestant_id, current_episode)
    player.sole_survivor_id = contestant_id
    await db.flush()

    swap = None
    if swap_plan is not None:
        pick, replacement_id = swap_plan
        swap = await apply_sole_survivor_swap(db, pick, replacement_id, current_episode)

    return {
        "changed": True,
        "player_id": player_id,
        "sole_survivor_id": contestant_id,
        "current_episode": current_episode,
        "draft_pick_swap": swap,
    }


async def get_sole_survivor_history(db: AsyncSession, player_id: int) -> list[SoleSurvivorHistory]:
    """Newest selection first."""
    result = await db.execute(
        select(SoleSurvivorHistory)
        .where(SoleSurvivorHistory.player_id == player_id)
        .order_by(SoleSurvivorHistory.start_episode.desc(), SoleSurvivorHistory.id.desc())
    )
    return result.scalars().all()
