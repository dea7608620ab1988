"""
Elimination Prediction Scorer.

Players predict who leaves each tribe in an episode. Scoring flips
is_correct from null to true/false exactly once; only a full recalculation
for an episode is allowed to reset it.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, case

from survivor_pool.core.config import get_settings
from survivor_pool.core.errors import (
    ConflictError, NotFoundError, PreconditionError, PredictionsLockedError,
)
from survivor_pool.models.models import (
    Contestant, ContestantEvent, EliminationPrediction, Episode, EventType, Player,
)
from survivor_pool.services.episodes import get_episode_or_raise

logger = logging.getLogger(__name__)


async def score_predictions(
    db: AsyncSession, episode_id: int, eliminated_contestant_id: int, tribe: str
) -> dict:
    """
    Score every unscored prediction for (episode, tribe) against the
    contestant who was eliminated. Already-scored rows are left alone, so a
    repeat call returns all zeros.
    """
    settings = get_settings()
    scored_at = datetime.now(timezone.utc)

    unscored = (
        EliminationPrediction.episode_id == episode_id,
        EliminationPrediction.tribe == tribe,
        EliminationPrediction.is_correct.is_(None),
    )

    correct_result = await db.execute(
        update(EliminationPrediction)
        .where(*unscored, EliminationPrediction.contestant_id == eliminated_contestant_id)
        .values(is_correct=True, scored_at=scored_at)
    )
    incorrect_result = await db.execute(
        update(EliminationPrediction)
        .where(*unscored, EliminationPrediction.contestant_id != eliminated_contestant_id)
        .values(is_correct=False, scored_at=scored_at)
    )

    correct = correct_result.rowcount or 0
    incorrect = incorrect_result.rowcount or 0
    if correct or incorrect:
        logger.info(
            "Scored predictions for episode %s tribe %s: %s correct, %s incorrect",
            episode_id, tribe, correct, incorrect,
        )

    return {
        "correct": correct,
        "incorrect": incorrect,
        "points_awarded": correct * settings.prediction_reward,
    }


async def get_prediction_bonus(db: AsyncSession, player_id: int) -> int:
    settings = get_settings()
    result = await db.execute(
        select(func.count()).select_from(EliminationPrediction).where(
            EliminationPrediction.player_id == player_id,
            EliminationPrediction.is_correct == True,
        )
    )
    return (result.scalar() or 0) * settings.prediction_reward


async def recalculate_prediction_scores(db: AsyncSession, episode_id: int) -> dict:
    """
    Reset an episode's predictions and replay its elimination events in the
    order they were recorded. Only the first elimination per tribe counts.
    """
    settings = get_settings()
    await get_episode_or_raise(db, episode_id)

    await db.execute(
        update(EliminationPrediction)
        .where(EliminationPrediction.episode_id == episode_id)
        .values(is_correct=None, scored_at=None)
    )

    result = await db.execute(
        select(ContestantEvent.contestant_id, Contestant.current_tribe)
        .join(EventType, ContestantEvent.event_type_id == EventType.id)
        .join(Contestant, ContestantEvent.contestant_id == Contestant.id)
        .where(
            ContestantEvent.episode_id == episode_id,
            EventType.name.in_(settings.elimination_event_types),
            Contestant.current_tribe.is_not(None),
        )
        .order_by(ContestantEvent.created_at, ContestantEvent.id)
    )

    totals = {"episode_id": episode_id, "eliminations_scored": 0,
              "correct": 0, "incorrect": 0, "points_awarded": 0}
    seen_tribes = set()
    for contestant_id, tribe in result.all():
        if tribe in seen_tribes:
            continue
        seen_tribes.add(tribe)
        outcome = await score_predictions(db, episode_id, contestant_id, tribe)
        totals["eliminations_scored"] += 1
        for key in ("correct", "incorrect", "points_awarded"):
            totals[key] += outcome[key]

    return totals


async def submit_predictions(
    db: AsyncSession, player_id: int, episode_id: int, predictions: list[dict]
) -> list[EliminationPrediction]:
    """
    predictions: [{"tribe": str, "contestant_id": int}, ...], at most one per tribe.
    A player gets one submission per episode.
    """
    episode = await get_episode_or_raise(db, episode_id)
    if episode.predictions_locked:
        raise PredictionsLockedError("Predictions are locked for this episode")

    if not predictions:
        raise PreconditionError("Predictions array is required")

    existing = await db.execute(
        select(EliminationPrediction.id).where(
            EliminationPrediction.player_id == player_id,
            EliminationPrediction.episode_id == episode_id,
        )
    )
    if existing.first() is not None:
        raise ConflictError("Predictions already submitted for this episode")

    tribes = set()
    for p in predictions:
        tribe = p.get("tribe")
        contestant_id = p.get("contestant_id")
        if not tribe or contestant_id is None:
            raise PreconditionError("Each prediction must have tribe and contestant_id")
        if tribe in tribes:
            raise PreconditionError(f"Duplicate prediction for tribe {tribe}")
        tribes.add(tribe)

        result = await db.execute(select(Contestant).where(Contestant.id == contestant_id))
        contestant = result.scalar_one_or_none()
        if contestant is None:
            raise PreconditionError(f"Invalid contestant ID: {contestant_id}")
        if contestant.is_eliminated:
            raise PreconditionError(f"Contestant {contestant.name} is already eliminated")
        if contestant.current_tribe != tribe:
            raise PreconditionError(f"Contestant {contestant.name} is not in tribe {tribe}")

    created = [
        EliminationPrediction(
            player_id=player_id,
            episode_id=episode_id,
            tribe=p["tribe"],
            contestant_id=p["contestant_id"],
        )
        for p in predictions
    ]
    db.add_all(created)
    await db.flush()
    return created


async def get_player_predictions(
    db: AsyncSession, player_id: int, episode_id: int | None = None
) -> list[EliminationPrediction]:
    query = select(EliminationPrediction).where(EliminationPrediction.player_id == player_id)
    if episode_id is not None:
        query = query.where(EliminationPrediction.episode_id == episode_id)
    result = await db.execute(
        query.order_by(EliminationPrediction.episode_id, EliminationPrediction.tribe)
    )
    return result.scalars().all()


async def set_predictions_locked(db: AsyncSession, episode_id: int, locked: bool) -> Episode:
    episode = await get_episode_or_raise(db, episode_id)
    episode.predictions_locked = locked
    await db.flush()
    logger.info("Predictions %s for episode %s", "locked" if locked else "unlocked", episode_id)
    return episode


def _accuracy(correct: int, scored: int) -> float:
    return round(correct / scored * 100, 1) if scored else 0.0


async def get_prediction_statistics(db: AsyncSession) -> dict:
    """Overall and per-episode accuracy plus participation."""
    total_players = (await db.execute(select(func.count()).select_from(Player))).scalar() or 0

    scored_expr = func.count(EliminationPrediction.is_correct)
    correct_expr = func.sum(case((EliminationPrediction.is_correct == True, 1), else_=0))

    overall = (await db.execute(
        select(func.count(EliminationPrediction.id), scored_expr, correct_expr)
    )).one()
    total, scored, correct = overall[0] or 0, overall[1] or 0, int(overall[2] or 0)

    per_episode_result = await db.execute(
        select(
            Episode.id,
            Episode.episode_number,
            func.count(EliminationPrediction.id),
            scored_expr,
            correct_expr,
            func.count(func.distinct(EliminationPrediction.player_id)),
        )
        .join(EliminationPrediction, EliminationPrediction.episode_id == Episode.id)
        .group_by(Episode.id, Episode.episode_number)
        .order_by(Episode.episode_number)
    )

    episodes = []
    for episode_id, number, ep_total, ep_scored, ep_correct, participants in per_episode_result.all():
        ep_scored = ep_scored or 0
        ep_correct = int(ep_correct or 0)
        episodes.append({
            "episode_id": episode_id,
            "episode_number": number,
            "total_predictions": ep_total or 0,
            "scored_predictions": ep_scored,
            "correct_predictions": ep_correct,
            "accuracy": _accuracy(ep_correct, ep_scored),
            "players_participated": participants or 0,
            "participation_rate": round(participants / total_players * 100, 1) if total_players else 0.0,
        })

    return {
        "overall": {
            "total_predictions": total,
            "scored_predictions": scored,
            "correct_predictions": correct,
            "accuracy": _accuracy(correct, scored),
            "total_players": total_players,
        },
        "by_episode": episodes,
    }
