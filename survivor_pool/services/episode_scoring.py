"""
Episode-Range Scorer.

The contestant_events table is the single source of truth for points. A
contestant's score for an episode is the sum of the point values snapshotted
onto that episode's events; a range score sums those over an inclusive span
of episode numbers. Contestant.total_score is only a cache of the open-ended
range starting at episode 1 and can always be rebuilt from here.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from survivor_pool.models.models import Contestant, ContestantEvent, Episode
from survivor_pool.services.episodes import find_current_episode_number

logger = logging.getLogger(__name__)


async def calculate_episode_score(db: AsyncSession, episode_id: int, contestant_id: int) -> int:
    """Sum of snapshotted point values for one (episode, contestant). No events -> 0."""
    result = await db.execute(
        select(func.coalesce(func.sum(ContestantEvent.point_value), 0)).where(
            ContestantEvent.episode_id == episode_id,
            ContestantEvent.contestant_id == contestant_id,
        )
    )
    return int(result.scalar() or 0)


async def calculate_contestant_score_for_range(
    db: AsyncSession,
    contestant_id: int,
    start_episode: int,
    end_episode: int | None = None,
) -> int:
    """
    Sum a contestant's episode scores for episode numbers in
    [start_episode, end_episode], or [start_episode, +inf) when end_episode
    is None.
    """
    query = (
        select(func.coalesce(func.sum(ContestantEvent.point_value), 0))
        .join(Episode, ContestantEvent.episode_id == Episode.id)
        .where(
            ContestantEvent.contestant_id == contestant_id,
            Episode.episode_number >= start_episode,
        )
    )
    if end_episode is not None:
        query = query.where(Episode.episode_number <= end_episode)

    result = await db.execute(query)
    return int(result.scalar() or 0)


async def get_contestant_episode_scores(
    db: AsyncSession,
    contestant_id: int,
    start_episode: int = 1,
    end_episode: int | None = None,
) -> list[dict]:
    """
    Per-episode scores for a contestant over a range, in episode order.
    Episodes without events are included with a score of 0.
    """
    episode_query = (
        select(Episode)
        .where(Episode.episode_number >= start_episode)
        .order_by(Episode.episode_number)
    )
    if end_episode is not None:
        episode_query = episode_query.where(Episode.episode_number <= end_episode)
    episodes = (await db.execute(episode_query)).scalars().all()

    totals_result = await db.execute(
        select(ContestantEvent.episode_id, func.sum(ContestantEvent.point_value))
        .where(ContestantEvent.contestant_id == contestant_id)
        .group_by(ContestantEvent.episode_id)
    )
    totals = {episode_id: int(score or 0) for episode_id, score in totals_result.all()}

    return [
        {
            "episode_id": episode.id,
            "episode_number": episode.episode_number,
            "is_current": episode.is_current,
            "score": totals.get(episode.id, 0),
        }
        for episode in episodes
    ]


TREND_SAME_THRESHOLD = 0.05


def calculate_performance_trend(scores: list[int]) -> str:
    """
    "up", "down", "same" or "n/a" from per-episode scores in episode order.

    Fewer than 3 episodes: "n/a". With 3-5 the last episode is compared to
    the average of the two before it; with 6 or more the average of the
    last three is compared to the three before those. A change within 5%
    of the baseline is "same".
    """
    count = len(scores)
    if count < 3:
        return "n/a"
    if count <= 5:
        recent = scores[-1]
        baseline = sum(scores[-3:-1]) / 2
    else:
        recent = sum(scores[-3:]) / 3
        baseline = sum(scores[-6:-3]) / 3

    if baseline == 0:
        # No relative change from a zero baseline; fall back to the sign
        if recent == 0:
            return "same"
        return "up" if recent > 0 else "down"
    if abs(recent - baseline) / abs(baseline) <= TREND_SAME_THRESHOLD:
        return "same"
    return "up" if recent > baseline else "down"


async def calculate_contestant_trends(db: AsyncSession, contestant_ids: list[int]) -> dict[int, str]:
    """
    Trend for each contestant over the episodes aired so far, stopping at
    their elimination episode. Two queries regardless of how many ids.
    """
    if not contestant_ids:
        return {}
    current_episode = await find_current_episode_number(db)
    if current_episode is None:
        return {contestant_id: "n/a" for contestant_id in contestant_ids}

    episode_result = await db.execute(
        select(Episode.id, Episode.episode_number)
        .where(Episode.episode_number <= current_episode)
        .order_by(Episode.episode_number)
    )
    episodes = episode_result.all()

    contestant_result = await db.execute(
        select(Contestant.id, Contestant.elimination_episode).where(Contestant.id.in_(contestant_ids))
    )
    last_episode = {
        contestant_id: elimination_episode if elimination_episode is not None else current_episode
        for contestant_id, elimination_episode in contestant_result.all()
    }

    totals_result = await db.execute(
        select(ContestantEvent.contestant_id, ContestantEvent.episode_id, func.sum(ContestantEvent.point_value))
        .where(ContestantEvent.contestant_id.in_(contestant_ids))
        .group_by(ContestantEvent.contestant_id, ContestantEvent.episode_id)
    )
    totals = {(c_id, e_id): int(score or 0) for c_id, e_id, score in totals_result.all()}

    trends = {}
    for contestant_id in contestant_ids:
        if contestant_id not in last_episode:
            trends[contestant_id] = "n/a"
            continue
        scores = [
            totals.get((contestant_id, episode_id), 0)
            for episode_id, episode_number in episodes
            if episode_number <= last_episode[contestant_id]
        ]
        trends[contestant_id] = calculate_performance_trend(scores)
    return trends


async def get_contestant_trend(db: AsyncSession, contestant_id: int) -> str:
    return (await calculate_contestant_trends(db, [contestant_id]))[contestant_id]


async def get_contestant_season_total(db: AsyncSession, contestant_id: int) -> int:
    """All-time total, straight from the event log."""
    return await calculate_contestant_score_for_range(db, contestant_id, 1, None)


async def update_contestant_total_score(db: AsyncSession, contestant_id: int) -> int:
    """Rebuild the cached total_score for one contestant. Returns the new total."""
    total = await get_contestant_season_total(db, contestant_id)

    result = await db.execute(select(Contestant).where(Contestant.id == contestant_id))
    contestant = result.scalar_one()
    contestant.total_score = total
    await db.flush()
    return total


async def recalculate_all_contestant_scores(db: AsyncSession) -> dict:
    """
    Nuclear option: rebuild every cached total from the event log.
    A failure on one contestant is logged and the rest still run.
    """
    result = await db.execute(select(Contestant.id).order_by(Contestant.id))
    contestant_ids = [row[0] for row in result.all()]

    updated = 0
    failed = []
    for contestant_id in contestant_ids:
        try:
            async with db.begin_nested():
                await update_contestant_total_score(db, contestant_id)
            updated += 1
        except Exception:
            logger.exception("Error updating score for contestant %s", contestant_id)
            failed.append(contestant_id)

    return {"contestants_updated": updated, "failed_contestant_ids": failed}
