import pytest
from sqlalchemy import select

from survivor_pool.core.errors import ConflictError
from survivor_pool.models.models import Contestant
from survivor_pool.services.episode_scoring import (
    calculate_contestant_score_for_range, calculate_contestant_trends, calculate_episode_score,
    calculate_performance_trend, get_contestant_episode_scores, recalculate_all_contestant_scores,
    update_contestant_total_score,
)
from survivor_pool.services.episodes import (
    count_episodes_between, create_episode, find_current_episode_number, get_current_episode_number,
    get_next_episode_number, set_current_episode,
)


async def test_episode_score_without_events_is_zero(db, factory):
    contestant = await factory.contestant("Kellie")
    episode = await factory.episode(1)

    assert await calculate_episode_score(db, episode.id, contestant.id) == 0


async def test_episode_score_sums_snapshotted_points(db, factory):
    contestant = await factory.contestant("Kellie")
    episode = await factory.episode(1)
    await factory.points(episode, contestant, 3)
    await factory.points(episode, contestant, -1)

    assert await calculate_episode_score(db, episode.id, contestant.id) == 2


async def test_open_range_equals_sum_of_episode_scores(db, factory):
    contestant = await factory.contestant("Kellie")
    episodes = await factory.episodes(4, current=4)
    for episode, points in zip(episodes, [2, 0, 5, -1]):
        if points:
            await factory.points(episode, contestant, points)

    open_range = await calculate_contestant_score_for_range(db, contestant.id, 1, None)
    per_episode = [await calculate_episode_score(db, e.id, contestant.id) for e in episodes]

    assert open_range == sum(per_episode) == 6


async def test_closed_range_is_inclusive(db, factory):
    contestant = await factory.contestant("Kellie")
    episodes = await factory.episodes(4)
    for episode in episodes:
        await factory.points(episode, contestant, episode.episode_number)

    assert await calculate_contestant_score_for_range(db, contestant.id, 2, 3) == 5
    assert await calculate_contestant_score_for_range(db, contestant.id, 3, None) == 7
    assert await calculate_contestant_score_for_range(db, contestant.id, 5, None) == 0


async def test_range_uses_episode_numbers_not_ids(db, factory):
    contestant = await factory.contestant("Kellie")
    # Inserted out of order so ids and numbers disagree
    late = await factory.episode(3)
    early = await factory.episode(1)
    await factory.points(late, contestant, 10)
    await factory.points(early, contestant, 1)

    assert await calculate_contestant_score_for_range(db, contestant.id, 1, 1) == 1
    assert await calculate_contestant_score_for_range(db, contestant.id, 2, None) == 10


async def test_episode_scores_include_zero_episodes(db, factory):
    contestant = await factory.contestant("Kellie")
    episodes = await factory.episodes(3, current=3)
    await factory.points(episodes[1], contestant, 4)

    scores = await get_contestant_episode_scores(db, contestant.id)

    assert [(s["episode_number"], s["score"]) for s in scores] == [(1, 0), (2, 4), (3, 0)]
    assert scores[2]["is_current"] is True


def test_trend_needs_three_episodes():
    assert calculate_performance_trend([]) == "n/a"
    assert calculate_performance_trend([4, 9]) == "n/a"


def test_short_trend_compares_last_episode_to_previous_two():
    assert calculate_performance_trend([2, 4, 6]) == "up"
    assert calculate_performance_trend([1, 6, 4, 2]) == "down"
    # 3.1 against a baseline of 3.0 is within 5%
    assert calculate_performance_trend([3, 3, 3.1]) == "same"


def test_long_trend_compares_last_three_to_three_before():
    # Only the last six episodes count: 5, 5, 5 then 1, 2, 3
    assert calculate_performance_trend([0, 0, 5, 5, 5, 1, 2, 3]) == "down"
    assert calculate_performance_trend([1, 1, 1, 4, 4, 4]) == "up"
    assert calculate_performance_trend([10, 10, 10, 10, 10, 10.4]) == "same"


def test_trend_from_zero_baseline_uses_sign():
    assert calculate_performance_trend([0, 0, 0]) == "same"
    assert calculate_performance_trend([0, 0, 2]) == "up"
    assert calculate_performance_trend([0, 0, -1]) == "down"


async def test_contestant_trends_stop_at_current_and_elimination(db, factory):
    rising = await factory.contestant("Kellie")
    out = await factory.contestant("Sam", is_eliminated=True, elimination_episode=3)
    episodes = await factory.episodes(5, current=4)
    for episode, points in zip(episodes, [1, 1, 1, 5, 9]):
        await factory.points(episode, rising, points)
    for episode, points in zip(episodes, [3, 3, 3]):
        await factory.points(episode, out, points)

    trends = await calculate_contestant_trends(db, [rising.id, out.id, 999])

    # rising: episodes 1-4 only, so 5 against (1 + 1) / 2
    # out: episodes 1-3 only, so the zeros after elimination don't count
    assert trends == {rising.id: "up", out.id: "same", 999: "n/a"}


async def test_cached_total_is_rebuilt_from_events(db, factory):
    contestant = await factory.contestant("Kellie")
    other = await factory.contestant("Sam")
    episode = await factory.episode(1)
    await factory.points(episode, contestant, 3)
    await factory.points(episode, other, 1)
    contestant.total_score = 99
    await db.flush()

    assert await update_contestant_total_score(db, contestant.id) == 3

    result = await recalculate_all_contestant_scores(db)
    assert result == {"contestants_updated": 2, "failed_contestant_ids": []}

    totals = (await db.execute(select(Contestant.name, Contestant.total_score))).all()
    assert dict(totals) == {"Kellie": 3, "Sam": 1}


async def test_current_episode_falls_back_to_highest(db, factory):
    assert await find_current_episode_number(db) is None
    assert await get_current_episode_number(db) == 1

    await factory.episodes(3)
    assert await find_current_episode_number(db) == 3

    episodes = (await factory.episode(4), await factory.episode(5))
    await set_current_episode(db, episodes[0].id)
    assert await find_current_episode_number(db) == 4

    await set_current_episode(db, episodes[1].id)
    assert await find_current_episode_number(db) == 5


async def test_next_episode_and_episode_counts(db, factory):
    for number in (1, 2, 4):
        await factory.episode(number)

    assert await get_next_episode_number(db, 2) == 4
    assert await get_next_episode_number(db, 4) == 5
    assert await count_episodes_between(db, 1, 4) == 2
    assert await count_episodes_between(db, 4, 2) == 0


async def test_created_episode_can_take_the_current_marker(db, factory):
    first = await factory.episode(1, is_current=True)

    second = await create_episode(db, 2, is_current=True)
    third = await create_episode(db, 3)

    assert second.is_current is True
    assert third.is_current is False
    assert first.is_current is False
    assert await find_current_episode_number(db) == 2
    with pytest.raises(ConflictError):
        await create_episode(db, 2)
