import pytest
from sqlalchemy import select

from survivor_pool.core.errors import ConflictError, PreconditionError, PredictionsLockedError
from survivor_pool.models.models import ContestantEvent, EliminationPrediction
from survivor_pool.services.predictions import (
    get_prediction_bonus, get_prediction_statistics, recalculate_prediction_scores,
    score_predictions, set_predictions_locked, submit_predictions,
)


async def _predict(db, player, episode, tribe, contestant):
    prediction = EliminationPrediction(
        player_id=player.id, episode_id=episode.id, tribe=tribe, contestant_id=contestant.id,
    )
    db.add(prediction)
    await db.flush()
    return prediction


async def test_scoring_marks_correct_and_incorrect(db, factory):
    eric, calvin, jake = [await factory.player(n) for n in ("eric", "calvin", "jake")]
    kellie, sam = await factory.contestant("Kellie"), await factory.contestant("Sam")
    episode = await factory.episode(1, is_current=True)
    await _predict(db, eric, episode, "Luvu", kellie)
    await _predict(db, calvin, episode, "Luvu", sam)
    await _predict(db, jake, episode, "Luvu", kellie)

    result = await score_predictions(db, episode.id, kellie.id, "Luvu")

    assert result == {"correct": 2, "incorrect": 1, "points_awarded": 6}
    rows = (await db.execute(select(EliminationPrediction))).scalars().all()
    assert all(r.scored_at is not None for r in rows)
    assert {r.player_id: r.is_correct for r in rows} == {eric.id: True, calvin.id: False, jake.id: True}


async def test_scoring_twice_is_idempotent(db, factory):
    eric = await factory.player("eric")
    kellie = await factory.contestant("Kellie")
    episode = await factory.episode(1)
    await _predict(db, eric, episode, "Luvu", kellie)

    await score_predictions(db, episode.id, kellie.id, "Luvu")
    second = await score_predictions(db, episode.id, kellie.id, "Luvu")

    assert second == {"correct": 0, "incorrect": 0, "points_awarded": 0}
    assert await get_prediction_bonus(db, eric.id) == 3


async def test_scoring_is_scoped_to_tribe(db, factory):
    eric = await factory.player("eric")
    kellie = await factory.contestant("Kellie", tribe="Luvu")
    sam = await factory.contestant("Sam", tribe="Gata")
    episode = await factory.episode(1)
    await _predict(db, eric, episode, "Luvu", kellie)
    gata = await _predict(db, eric, episode, "Gata", sam)

    await score_predictions(db, episode.id, kellie.id, "Luvu")

    assert (await db.execute(
        select(EliminationPrediction.is_correct).where(EliminationPrediction.id == gata.id)
    )).scalar() is None


async def test_recalculation_replays_first_elimination_per_tribe(db, factory):
    eric = await factory.player("eric")
    kellie = await factory.contestant("Kellie", tribe="Luvu")
    sam = await factory.contestant("Sam", tribe="Luvu")
    episode = await factory.episode(1)
    eliminated = await factory.event_type("eliminated", -1)
    await _predict(db, eric, episode, "Luvu", sam)
    for contestant in (kellie, sam):
        db.add(ContestantEvent(
            episode_id=episode.id, contestant_id=contestant.id,
            event_type_id=eliminated.id, point_value=-1,
        ))
    await db.flush()
    # Scored wrongly by hand; recalculation must fix it
    await score_predictions(db, episode.id, sam.id, "Luvu")

    result = await recalculate_prediction_scores(db, episode.id)

    assert result["eliminations_scored"] == 1
    assert result["correct"] == 0 and result["incorrect"] == 1
    assert await get_prediction_bonus(db, eric.id) == 0


async def test_submit_predictions_validation(db, factory):
    eric = await factory.player("eric")
    kellie = await factory.contestant("Kellie", tribe="Luvu")
    sam = await factory.contestant("Sam", tribe="Gata")
    gone = await factory.contestant("Gone", tribe="Gata", is_eliminated=True)
    episode = await factory.episode(1)

    with pytest.raises(PreconditionError):
        await submit_predictions(db, eric.id, episode.id, [{"tribe": "Gata", "contestant_id": kellie.id}])
    with pytest.raises(PreconditionError):
        await submit_predictions(db, eric.id, episode.id, [{"tribe": "Gata", "contestant_id": gone.id}])
    with pytest.raises(PreconditionError):
        await submit_predictions(db, eric.id, episode.id, [
            {"tribe": "Gata", "contestant_id": sam.id},
            {"tribe": "Gata", "contestant_id": sam.id},
        ])

    created = await submit_predictions(db, eric.id, episode.id, [
        {"tribe": "Luvu", "contestant_id": kellie.id},
        {"tribe": "Gata", "contestant_id": sam.id},
    ])
    assert len(created) == 2

    with pytest.raises(ConflictError):
        await submit_predictions(db, eric.id, episode.id, [{"tribe": "Luvu", "contestant_id": kellie.id}])


async def test_locked_episode_rejects_predictions(db, factory):
    eric = await factory.player("eric")
    kellie = await factory.contestant("Kellie")
    episode = await factory.episode(1)
    await set_predictions_locked(db, episode.id, True)

    with pytest.raises(PredictionsLockedError):
        await submit_predictions(db, eric.id, episode.id, [{"tribe": "Luvu", "contestant_id": kellie.id}])


async def test_prediction_statistics(db, factory):
    eric, calvin = await factory.player("eric"), await factory.player("calvin")
    kellie, sam = await factory.contestant("Kellie"), await factory.contestant("Sam")
    episode = await factory.episode(1)
    await _predict(db, eric, episode, "Luvu", kellie)
    await _predict(db, calvin, episode, "Luvu", sam)
    await score_predictions(db, episode.id, kellie.id, "Luvu")

    stats = await get_prediction_statistics(db)

    assert stats["overall"] == {
        "total_predictions": 2,
        "scored_predictions": 2,
        "correct_predictions": 1,
        "accuracy": 50.0,
        "total_players": 2,
    }
    [by_episode] = stats["by_episode"]
    assert by_episode["episode_number"] == 1
    assert by_episode["players_participated"] == 2
    assert by_episode["participation_rate"] == 100.0
