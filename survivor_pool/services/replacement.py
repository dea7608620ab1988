"""
Elimination Replacement Resolver.

When a drafted contestant leaves the game, every player holding them in an
open pick gets their highest-ranked contestant that nobody else holds. The
old pick is closed at the elimination episode and a new pick for the same
slot opens at the next episode, so the draft score keeps the points the
eliminated contestant earned while on the roster.

Each affected pick is resolved inside its own SAVEPOINT. A failure for one
player is logged and reported, never raised; the elimination itself must
still go through.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.models.models import Contestant, DraftPick, Player, Ranking
from survivor_pool.services.episodes import get_next_episode_number

logger = logging.getLogger(__name__)

_UNSET = object()


async def build_exclusion_set(
    db: AsyncSession,
    player_id: int,
    vacated_pick_id: int | None = None,
    sole_survivor_id=_UNSET,
) -> set[int]:
    """
    Contestants a player can't take as a replacement: anything held in an
    open pick by anyone (except the pick being vacated), the player's own
    sole survivor, and everyone already eliminated.

    sole_survivor_id overrides the stored selection while it is being changed.
    """
    open_query = select(DraftPick.contestant_id).where(DraftPick.end_episode.is_(None))
    if vacated_pick_id is not None:
        open_query = open_query.where(DraftPick.id != vacated_pick_id)
    excluded = {row[0] for row in (await db.execute(open_query)).all()}

    if sole_survivor_id is _UNSET:
        result = await db.execute(select(Player.sole_survivor_id).where(Player.id == player_id))
        sole_survivor_id = result.scalar_one_or_none()
    if sole_survivor_id is not None:
        excluded.add(sole_survivor_id)

    eliminated = await db.execute(
        select(Contestant.id).where(Contestant.is_eliminated == True)
    )
    excluded.update(row[0] for row in eliminated.all())
    return excluded


async def find_replacement(db: AsyncSession, player_id: int, excluded: set[int]) -> int | None:
    """Highest-ranked contestant in the player's ranking that isn't excluded."""
    result = await db.execute(
        select(Ranking.contestant_id)
        .where(Ranking.player_id == player_id)
        .order_by(Ranking.rank, Ranking.id)
    )
    for contestant_id in result.scalars().all():
        if contestant_id not in excluded:
            return contestant_id
    return None


async def _swap_pick(
    db: AsyncSession,
    pick: DraftPick,
    replacement_id: int,
    close_at: int,
) -> dict:
    """Close a pick at close_at and open the replacement in the same slot at the next episode."""
    start_at = await get_next_episode_number(db, close_at)
    vacated_contestant_id = pick.contestant_id

    pick.end_episode = close_at
    new_pick = DraftPick(
        player_id=pick.player_id,
        contestant_id=replacement_id,
        pick_number=pick.pick_number,
        start_episode=start_at,
        end_episode=None,
        is_replacement=True,
        replaced_contestant_id=vacated_contestant_id,
    )
    db.add(new_pick)
    await db.flush()

    return {
        "player_id": pick.player_id,
        "pick_number": pick.pick_number,
        "closed_pick_id": pick.id,
        "new_pick_id": new_pick.id,
        "replaced_contestant_id": vacated_contestant_id,
        "replacement_contestant_id": replacement_id,
        "closed_at_episode": close_at,
        "start_episode": start_at,
    }


async def _resolve_eliminated_pick(
    db: AsyncSession, pick_id: int, elimination_episode: int
) -> dict | None:
    result = await db.execute(select(DraftPick).where(DraftPick.id == pick_id))
    pick = result.scalar_one()

    excluded = await build_exclusion_set(db, pick.player_id, vacated_pick_id=pick.id)
    replacement_id = await find_replacement(db, pick.player_id, excluded)
    if replacement_id is None:
        return None
    return await _swap_pick(db, pick, replacement_id, elimination_episode)


async def replace_eliminated_draft_picks(
    db: AsyncSession,
    contestant_id: int,
    elimination_episode: int,
) -> dict:
    """
    Resolve every open pick holding an eliminated contestant.

    Picks are processed in draft-slot order and the exclusion set is rebuilt
    for each one, so two players never receive the same replacement.

    Returns:
        {"replacements": [...], "unresolved": [...], "failures": [...]}
        Unresolved picks stay open and earn elimination compensation.
    """
    result = await db.execute(
        select(DraftPick)
        .where(DraftPick.contestant_id == contestant_id, DraftPick.end_episode.is_(None))
        .order_by(DraftPick.pick_number, DraftPick.id)
    )
    # Plain values only: a rolled-back savepoint expires the ORM rows
    targets = [(p.id, p.player_id, p.pick_number) for p in result.scalars().all()]

    replacements = []
    unresolved = []
    failures = []
    for pick_id, player_id, pick_number in targets:
        try:
            async with db.begin_nested():
                outcome = await _resolve_eliminated_pick(db, pick_id, elimination_episode)
        except Exception as e:
            logger.exception(
                "Replacement failed for player %s pick %s (contestant %s)",
                player_id, pick_id, contestant_id,
            )
            failures.append({"player_id": player_id, "pick_id": pick_id, "error": str(e)})
            continue

        if outcome is None:
            logger.info(
                "No replacement available for player %s pick %s; contestant %s stays on roster",
                player_id, pick_id, contestant_id,
            )
            unresolved.append({
                "player_id": player_id,
                "pick_id": pick_id,
                "pick_number": pick_number,
                "contestant_id": contestant_id,
            })
        else:
            replacements.append(outcome)

    if replacements:
        logger.info(
            "Replaced %s draft pick(s) for eliminated contestant %s",
            len(replacements), contestant_id,
        )
    return {"replacements": replacements, "unresolved": unresolved, "failures": failures}


async def replace_all_eliminated_draft_picks(db: AsyncSession) -> dict:
    """Re-run resolution for every eliminated contestant still sitting in an open pick."""
    result = await db.execute(
        select(Contestant.id, Contestant.elimination_episode)
        .join(DraftPick, DraftPick.contestant_id == Contestant.id)
        .where(Contestant.is_eliminated == True, DraftPick.end_episode.is_(None))
        .distinct()
        .order_by(Contestant.id)
    )
    rows = result.all()

    combined = {"replacements": [], "unresolved": [], "failures": []}
    for contestant_id, elimination_episode in rows:
        if elimination_episode is None:
            logger.warning(
                "Contestant %s is eliminated but has no elimination episode; skipping",
                contestant_id,
            )
            combined["failures"].append({
                "contestant_id": contestant_id,
                "error": "unknown elimination episode",
            })
            continue
        outcome = await replace_eliminated_draft_picks(db, contestant_id, elimination_episode)
        for key in combined:
            combined[key].extend(outcome[key])
    return combined


async def find_open_pick(db: AsyncSession, player_id: int, contestant_id: int) -> DraftPick | None:
    result = await db.execute(
        select(DraftPick).where(
            DraftPick.player_id == player_id,
            DraftPick.contestant_id == contestant_id,
            DraftPick.end_episode.is_(None),
        )
    )
    return result.scalars().first()


async def plan_sole_survivor_swap(
    db: AsyncSession, player_id: int, new_sole_survivor_id: int
) -> tuple[DraftPick, int | None] | None:
    """
    When a player promotes one of their own open picks to sole survivor, find
    the pick and the contestant that would replace it. None if no conflict.
    """
    pick = await find_open_pick(db, player_id, new_sole_survivor_id)
    if pick is None:
        return None
    excluded = await build_exclusion_set(
        db, player_id, vacated_pick_id=pick.id, sole_survivor_id=new_sole_survivor_id
    )
    return pick, await find_replacement(db, player_id, excluded)


async def apply_sole_survivor_swap(
    db: AsyncSession, pick: DraftPick, replacement_id: int, current_episode: int
) -> dict:
    """Close the promoted pick at the current episode; replacement opens at the next."""
    outcome = await _swap_pick(db, pick, replacement_id, current_episode)
    logger.info(
        "Player %s moved contestant %s to sole survivor; pick slot %s now holds contestant %s",
        outcome["player_id"], outcome["replaced_contestant_id"],
        outcome["pick_number"], replacement_id,
    )
    return outcome
