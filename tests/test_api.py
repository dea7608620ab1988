from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event

from survivor_pool.core.database import get_db
from survivor_pool.main import app
from survivor_pool.models.models import Contestant, Episode, EventType, Player
from survivor_pool.services.leaderboard_cache import LeaderboardCache


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.leaderboard_cache.invalidate()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def league(session_factory):
    """Admin plus one player, six contestants and two episodes, committed."""
    async with session_factory() as session:
        admin = Player(username="eric", display_name="Eric", is_admin=True)
        calvin = Player(username="calvin", display_name="Calvin")
        cast = [Contestant(name=f"Contestant {i}", current_tribe="Luvu") for i in range(1, 7)]
        episodes = [Episode(episode_number=1, is_current=True), Episode(episode_number=2)]
        immunity = EventType(name="individual_immunity_win", display_name="Immunity", point_value=3)
        eliminated = EventType(name="eliminated", display_name="Eliminated", point_value=-1)
        session.add_all([admin, calvin, *cast, *episodes, immunity, eliminated])
        await session.commit()
        return {
            "admin": admin.id,
            "calvin": calvin.id,
            "cast": [c.id for c in cast],
            "episodes": [e.id for e in episodes],
            "immunity": immunity.id,
            "eliminated": eliminated.id,
        }


async def submit(client, auth, player_id, cast):
    return await client.post(
        "/api/draft/rankings",
        json={
            "rankings": [{"contestant_id": c} for c in cast[:-1]],
            "sole_survivor_id": cast[-1],
        },
        headers=auth(player_id),
    )


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


async def test_requests_need_a_valid_token(client, league, auth):
    assert (await client.get("/api/leaderboard")).status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert (await client.get("/api/leaderboard", headers=bad)).status_code == 401
    expired = auth(league["calvin"], expires_in=timedelta(minutes=-5))
    assert (await client.get("/api/leaderboard", headers=expired)).status_code == 401
    assert (await client.get("/api/leaderboard", headers=auth(league["calvin"]))).status_code == 200


async def test_running_the_draft_requires_admin(client, league, auth):
    response = await client.post("/api/draft/run", headers=auth(league["calvin"]))
    assert response.status_code == 403


async def test_draft_with_missing_rankings_reports_players(client, league, auth):
    await submit(client, auth, league["admin"], league["cast"])

    response = await client.post("/api/draft/run", headers=auth(league["admin"]))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["missing_players"] == [{"player_id": league["calvin"], "display_name": "Calvin"}]

    status = (await client.get("/api/draft/status", headers=auth(league["admin"]))).json()
    assert status["is_complete"] is False
    assert status["pick_count"] == 0


async def test_draft_runs_once(client, league, auth):
    for player_id in (league["admin"], league["calvin"]):
        response = await submit(client, auth, player_id, league["cast"])
        assert response.status_code == 201

    first = await client.post("/api/draft/run", headers=auth(league["admin"]))
    assert first.status_code == 200
    assert len(first.json()["picks"]) == 4

    second = await client.post("/api/draft/run", headers=auth(league["admin"]))
    assert second.status_code == 409

    picks = await client.get("/api/draft/picks", headers=auth(league["calvin"]))
    assert len(picks.json()) == 4


async def test_duplicate_ranking_submission_conflicts(client, league, auth):
    assert (await submit(client, auth, league["calvin"], league["cast"])).status_code == 201
    assert (await submit(client, auth, league["calvin"], league["cast"])).status_code == 409


async def test_recording_events_updates_leaderboard(client, league, auth):
    for player_id in (league["admin"], league["calvin"]):
        await submit(client, auth, player_id, league["cast"])
    await client.post("/api/draft/run", headers=auth(league["admin"]))

    before = await client.get("/api/leaderboard", headers=auth(league["calvin"]))
    assert before.status_code == 200
    assert {e["total"] for e in before.json()["entries"]} == {1}

    picks = (await client.get("/api/draft/picks", headers=auth(league["admin"]))).json()
    drafted = picks[0]["contestant_id"]
    response = await client.post(
        f"/api/episodes/{league['episodes'][0]}/events",
        json={"events": [{"contestant_id": drafted, "event_type_id": league["immunity"]}]},
        headers=auth(league["admin"]),
    )
    assert response.status_code == 201
    assert response.json()["eliminations"] == []

    after = (await client.get("/api/leaderboard", headers=auth(league["calvin"]))).json()
    leader = after["entries"][0]
    assert leader["player_id"] == picks[0]["player_id"]
    assert leader["draft_score"] == 3
    assert leader["rank"] == 1


async def test_elimination_through_api_replaces_pick(client, league, auth):
    for player_id in (league["admin"], league["calvin"]):
        await submit(client, auth, player_id, league["cast"])
    await client.post("/api/draft/run", headers=auth(league["admin"]))
    picks = (await client.get("/api/draft/picks", headers=auth(league["admin"]))).json()
    victim = picks[0]

    response = await client.post(
        f"/api/episodes/{league['episodes'][0]}/events",
        json={"events": [{"contestant_id": victim["contestant_id"], "event_type_id": league["eliminated"]}]},
        headers=auth(league["admin"]),
    )

    [fan_out] = response.json()["eliminations"]
    [replacement] = fan_out["replacements"]
    assert replacement["player_id"] == victim["player_id"]
    assert replacement["closed_at_episode"] == 1
    assert replacement["start_episode"] == 2

    breakdown = await client.get(
        f"/api/players/{victim['player_id']}/draft-picks", headers=auth(league["admin"])
    )
    assert len(breakdown.json()) == 3


async def test_sole_survivor_change_and_bonus(client, league, auth):
    await submit(client, auth, league["calvin"], league["cast"])
    headers = auth(league["calvin"])

    response = await client.put(
        "/api/players/me/sole-survivor",
        json={"contestant_id": league["cast"][0]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["changed"] is True

    history = await client.get(f"/api/players/{league['calvin']}/sole-survivor/history", headers=headers)
    assert [h["end_episode"] for h in history.json()] == [None, 1]

    bonus = await client.get(f"/api/players/{league['calvin']}/sole-survivor/bonus", headers=headers)
    assert bonus.json()["episode_bonus"] == 1


async def test_unknown_episode_is_404(client, league, auth):
    response = await client.post(
        "/api/episodes/999/events",
        json={"events": [{"contestant_id": league["cast"][0], "event_type_id": league["immunity"]}]},
        headers=auth(league["admin"]),
    )
    assert response.status_code == 404


async def test_predictions_flow(client, league, auth):
    episode_id = league["episodes"][1]
    response = await client.post(
        f"/api/predictions/episodes/{episode_id}",
        json={"predictions": [{"tribe": "Luvu", "contestant_id": league["cast"][2]}]},
        headers=auth(league["calvin"]),
    )
    assert response.status_code == 201

    lock = await client.put(
        f"/api/predictions/episodes/{episode_id}/lock",
        json={"locked": True},
        headers=auth(league["admin"]),
    )
    assert lock.json()["predictions_locked"] is True

    late = await client.post(
        f"/api/predictions/episodes/{episode_id}",
        json={"predictions": [{"tribe": "Luvu", "contestant_id": league["cast"][2]}]},
        headers=auth(league["admin"]),
    )
    assert late.status_code == 400

    await client.post(
        f"/api/episodes/{episode_id}/events",
        json={"events": [{"contestant_id": league["cast"][2], "event_type_id": league["eliminated"]}]},
        headers=auth(league["admin"]),
    )

    score = (await client.get(f"/api/players/{league['calvin']}/score", headers=auth(league["calvin"]))).json()
    assert score["prediction_bonus"] == 3

    stats = (await client.get("/api/predictions/statistics", headers=auth(league["calvin"]))).json()
    assert stats["overall"]["accuracy"] == 100.0


class RecordingCache(LeaderboardCache):
    def __init__(self, log):
        super().__init__(ttl_seconds=300)
        self.log = log

    def invalidate(self):
        self.log.append("invalidate")
        super().invalidate()


async def test_score_writes_commit_before_dropping_the_leaderboard(
    client, league, auth, session_factory, monkeypatch
):
    log = []

    async def recording_get_db():
        async with session_factory() as session:
            event.listen(session.sync_session, "after_commit", lambda s: log.append("commit"))
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = recording_get_db
    monkeypatch.setattr(app.state, "leaderboard_cache", RecordingCache(log))

    response = await client.post(
        f"/api/episodes/{league['episodes'][0]}/events",
        json={"events": [{"contestant_id": league["cast"][0], "event_type_id": league["immunity"]}]},
        headers=auth(league["admin"]),
    )

    assert response.status_code == 201
    assert log[:2] == ["commit", "invalidate"]


async def test_episode_scores_report_trend(client, league, auth):
    contestant_id = league["cast"][0]
    headers = auth(league["admin"])
    for episode_number in (3, 4):
        created = await client.post(
            "/api/episodes", json={"episode_number": episode_number}, headers=headers
        )
        assert created.status_code == 201
    episode_ids = [e["id"] for e in (await client.get("/api/episodes", headers=headers)).json()]
    await client.post(f"/api/episodes/{episode_ids[3]}/set-current", headers=headers)
    for episode_id in episode_ids[2:]:
        await client.post(
            f"/api/episodes/{episode_id}/events",
            json={"events": [{"contestant_id": contestant_id, "event_type_id": league["immunity"]}]},
            headers=headers,
        )

    response = await client.get(f"/api/contestants/{contestant_id}/episode-scores", headers=headers)

    body = response.json()
    assert [e["score"] for e in body["episodes"]] == [0, 0, 3, 3]
    assert body["trend"] == "up"

    listing = (await client.get("/api/contestants", headers=headers)).json()
    trends = {c["id"]: c["trend"] for c in listing}
    assert trends[contestant_id] == "up"
    assert trends[league["cast"][1]] == "same"
