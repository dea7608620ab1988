"""
Event recording and the elimination fan-out.

Recording validates every reference before writing anything. Once the
events are in, each elimination-class event marks the contestant out, hands
their draft picks to the replacement resolver and scores that tribe's
predictions. Those two downstream branches run in their own SAVEPOINTs: if
one fails it is logged and reported, and the elimination still stands.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.core.config import get_settings
from survivor_pool.core.errors import NotFoundError, PreconditionError
from survivor_pool.models.models import Contestant, ContestantEvent, EventType
from survivor_pool.services.episode_scoring import update_contestant_total_score
from survivor_pool.services.episodes import get_current_episode_number, get_episode_or_raise
from survivor_pool.services.predictions import score_predictions
from survivor_pool.services.replacement import replace_eliminated_draft_picks

logger = logging.getLogger(__name__)

CONTESTANT_EDITABLE_FIELDS = ("name", "profession", "image_url", "current_tribe", "is_winner", "is_eliminated")


def is_elimination_event(event_type_name: str) -> bool:
    return event_type_name in get_settings().elimination_event_types


async def get_contestant_or_raise(db: AsyncSession, contestant_id: int) -> Contestant:
    result = await db.execute(select(Contestant).where(Contestant.id == contestant_id))
    contestant = result.scalar_one_or_none()
    if contestant is None:
        raise NotFoundError(f"Contestant {contestant_id} not found")
    return contestant


async def mark_contestant_eliminated(
    db: AsyncSession, contestant_id: int, episode_number: int
) -> Contestant:
    """
    Flag the contestant out as of episode_number. An earlier elimination
    episode is kept.
    """
    contestant = await get_contestant_or_raise(db, contestant_id)
    contestant.is_eliminated = True
    if contestant.elimination_episode is None:
        contestant.elimination_episode = episode_number
    await db.flush()
    return contestant


async def eliminate_contestant(
    db: AsyncSession, contestant_id: int, episode_number: int | None = None
) -> dict:
    """
    Eliminate a contestant outside of event recording and resolve their
    draft picks. Defaults to the current episode.
    """
    if episode_number is None:
        episode_number = await get_current_episode_number(db)

    contestant = await mark_contestant_eliminated(db, contestant_id, episode_number)
    elimination_episode = contestant.elimination_episode

    outcome = await replace_eliminated_draft_picks(db, contestant_id, elimination_episode)
    logger.info(
        "Contestant %s eliminated at episode %s: %s replacement(s), %s unresolved",
        contestant_id, elimination_episode,
        len(outcome["replacements"]), len(outcome["unresolved"]),
    )
    return {"contestant_id": contestant_id, "elimination_episode": elimination_episode, **outcome}


async def _fan_out_elimination(
    db: AsyncSession,
    episode_id: int,
    contestant_id: int,
    elimination_episode: int,
    tribe: str | None,
) -> dict:
    report = {
        "contestant_id": contestant_id,
        "elimination_episode": elimination_episode,
        "replacements": [],
        "unresolved": [],
        "predictions": None,
        "failures": [],
    }

    try:
        async with db.begin_nested():
            outcome = await replace_eliminated_draft_picks(db, contestant_id, elimination_episode)
        report["replacements"] = outcome["replacements"]
        report["unresolved"] = outcome["unresolved"]
        report["failures"].extend(outcome["failures"])
    except Exception as e:
        logger.exception("Draft pick replacement failed for contestant %s", contestant_id)
        report["failures"].append({"stage": "replacement", "error": str(e)})

    if tribe:
        try:
            async with db.begin_nested():
                report["predictions"] = await score_predictions(db, episode_id, contestant_id, tribe)
        except Exception as e:
            logger.exception(
                "Prediction scoring failed for episode %s tribe %s", episode_id, tribe
            )
            report["failures"].append({"stage": "predictions", "error": str(e)})
    else:
        logger.warning("Contestant %s has no tribe; skipping prediction scoring", contestant_id)

    return report


async def record_events(
    db: AsyncSession,
    episode_id: int,
    events: list[dict],
    created_by: int | None = None,
) -> dict:
    """
    Record contestant events for an episode.

    events: [{"contestant_id": int, "event_type_id": int}, ...]

    Point values are copied from the event type at this moment; later edits
    to the catalog don't touch recorded events.
    """
    if not events:
        raise PreconditionError("Events array is required")

    episode = await get_episode_or_raise(db, episode_id)
    episode_number = episode.episode_number

    contestant_ids = {e["contestant_id"] for e in events}
    found = await db.execute(select(Contestant.id).where(Contestant.id.in_(contestant_ids)))
    missing = contestant_ids - {row[0] for row in found.all()}
    if missing:
        raise NotFoundError(f"Contestants not found: {sorted(missing)}")

    event_type_ids = {e["event_type_id"] for e in events}
    type_result = await db.execute(select(EventType).where(EventType.id.in_(event_type_ids)))
    event_types = {t.id: t for t in type_result.scalars().all()}
    missing = event_type_ids - set(event_types)
    if missing:
        raise NotFoundError(f"Event types not found: {sorted(missing)}")
    inactive = [t.name for t in event_types.values() if not t.is_active]
    if inactive:
        raise PreconditionError(f"Inactive event types: {sorted(inactive)}")

    rows = [
        ContestantEvent(
            episode_id=episode_id,
            contestant_id=e["contestant_id"],
            event_type_id=e["event_type_id"],
            point_value=event_types[e["event_type_id"]].point_value,
            created_by=created_by,
        )
        for e in events
    ]
    db.add_all(rows)
    await db.flush()

    recorded = [
        {
            "id": row.id,
            "contestant_id": row.contestant_id,
            "event_type_id": row.event_type_id,
            "event_type": event_types[row.event_type_id].name,
            "point_value": row.point_value,
        }
        for row in rows
    ]

    eliminations = []
    eliminated_ids = []
    for item in recorded:
        if is_elimination_event(item["event_type"]) and item["contestant_id"] not in eliminated_ids:
            eliminated_ids.append(item["contestant_id"])

    # Everyone voted out in this batch is flagged before any pick is
    # resolved, so none of them can be handed out as a replacement.
    marked = []
    for contestant_id in eliminated_ids:
        contestant = await mark_contestant_eliminated(db, contestant_id, episode_number)
        marked.append((contestant_id, contestant.elimination_episode, contestant.current_tribe))

    for contestant_id, elimination_episode, tribe in marked:
        eliminations.append(
            await _fan_out_elimination(db, episode_id, contestant_id, elimination_episode, tribe)
        )

    totals = {}
    for contestant_id in sorted(contestant_ids):
        totals[contestant_id] = await update_contestant_total_score(db, contestant_id)

    logger.info(
        "Recorded %s event(s) for episode %s (%s elimination(s))",
        len(recorded), episode_number, len(eliminations),
    )
    return {
        "episode_id": episode_id,
        "events": recorded,
        "eliminations": eliminations,
        "contestant_totals": totals,
    }


async def list_episode_events(db: AsyncSession, episode_id: int) -> list[ContestantEvent]:
    await get_episode_or_raise(db, episode_id)
    result = await db.execute(
        select(ContestantEvent)
        .where(ContestantEvent.episode_id == episode_id)
        .order_by(ContestantEvent.id)
    )
    return result.scalars().all()


async def delete_event(db: AsyncSession, episode_id: int, event_id: int) -> dict:
    """
    Remove one recorded event and rebuild the contestant's total. Deleting
    an elimination event does not bring the contestant back.
    """
    result = await db.execute(
        select(ContestantEvent).where(
            ContestantEvent.id == event_id,
            ContestantEvent.episode_id == episode_id,
        )
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError("Event not found")

    contestant_id = event.contestant_id
    await db.delete(event)
    await db.flush()

    total = await update_contestant_total_score(db, contestant_id)
    return {"deleted_event_id": event_id, "contestant_id": contestant_id, "total_score": total}


async def update_contestant(db: AsyncSession, contestant_id: int, changes: dict) -> dict:
    """
    Edit a contestant. Flipping is_eliminated on runs the replacement
    resolver at the current episode; flipping it off clears the
    elimination episode.
    """
    unknown = set(changes) - set(CONTESTANT_EDITABLE_FIELDS)
    if unknown:
        raise PreconditionError(f"Fields cannot be edited: {sorted(unknown)}")

    contestant = await get_contestant_or_raise(db, contestant_id)
    was_eliminated = contestant.is_eliminated

    for field, value in changes.items():
        if field != "is_eliminated":
            setattr(contestant, field, value)
    await db.flush()

    elimination = None
    if changes.get("is_eliminated") is True and not was_eliminated:
        elimination = await eliminate_contestant(db, contestant_id)
    elif changes.get("is_eliminated") is False and was_eliminated:
        contestant = await get_contestant_or_raise(db, contestant_id)
        contestant.is_eliminated = False
        contestant.elimination_episode = None
        await db.flush()

    contestant = await get_contestant_or_raise(db, contestant_id)
    return {"contestant": contestant, "elimination": elimination}


async def list_contestants(db: AsyncSession) -> list[Contestant]:
    result = await db.execute(select(Contestant).order_by(Contestant.name))
    return result.scalars().all()
