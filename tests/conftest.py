from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from survivor_pool.core.config import get_settings
from survivor_pool.core.database import Base, build_engine
from survivor_pool.models.models import (
    Contestant, ContestantEvent, DraftPick, Episode, EventCategory, EventType,
    Player, Ranking, SoleSurvivorHistory,
)


@pytest.fixture
async def engine():
    test_engine = build_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class Factory:
    """Shortcuts for building league state directly in the database."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._points_type_id = None

    async def contestant(self, name, tribe="Luvu", **kwargs):
        contestant = Contestant(name=name, current_tribe=tribe, **kwargs)
        self.db.add(contestant)
        await self.db.flush()
        return contestant

    async def contestants(self, count, tribe="Luvu"):
        return [await self.contestant(f"Contestant {i}", tribe) for i in range(1, count + 1)]

    async def player(self, username, is_admin=False):
        player = Player(username=username, display_name=username.title(), is_admin=is_admin)
        self.db.add(player)
        await self.db.flush()
        return player

    async def episode(self, number, is_current=False):
        episode = Episode(episode_number=number, is_current=is_current)
        self.db.add(episode)
        await self.db.flush()
        return episode

    async def episodes(self, count, current=None):
        return [await self.episode(n, is_current=(n == current)) for n in range(1, count + 1)]

    async def event_type(self, name, point_value, category=EventCategory.BASIC, is_active=True):
        event_type = EventType(
            name=name,
            display_name=name.replace("_", " ").title(),
            point_value=point_value,
            category=category,
            is_active=is_active,
        )
        self.db.add(event_type)
        await self.db.flush()
        return event_type

    async def points(self, episode, contestant, point_value):
        """Record a raw point-carrying event without going through the service."""
        if self._points_type_id is None:
            self._points_type_id = (await self.event_type("test_points", 1)).id
        event = ContestantEvent(
            episode_id=episode.id,
            contestant_id=contestant.id,
            event_type_id=self._points_type_id,
            point_value=point_value,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def pick(self, player, contestant, pick_number, start=1, end=None):
        pick = DraftPick(
            player_id=player.id,
            contestant_id=contestant.id,
            pick_number=pick_number,
            start_episode=start,
            end_episode=end,
        )
        self.db.add(pick)
        await self.db.flush()
        return pick

    async def ranking(self, player, contestants, submitted=True):
        for rank, contestant in enumerate(contestants, 1):
            self.db.add(Ranking(player_id=player.id, contestant_id=contestant.id, rank=rank))
        player.has_submitted_rankings = submitted
        await self.db.flush()

    async def sole_survivor(self, player, contestant, start=1):
        self.db.add(SoleSurvivorHistory(
            player_id=player.id, contestant_id=contestant.id, start_episode=start,
        ))
        player.sole_survivor_id = contestant.id
        await self.db.flush()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def open_picks(db):
    """Currently held picks, optionally for one player, in draft-slot order."""
    async def _open_picks(player_id=None):
        query = select(DraftPick).where(DraftPick.end_episode.is_(None))
        if player_id is not None:
            query = query.where(DraftPick.player_id == player_id)
        result = await db.execute(query.order_by(DraftPick.pick_number, DraftPick.id))
        return result.scalars().all()
    return _open_picks


@pytest.fixture
def auth():
    """Bearer headers for a player, signed the way the auth service signs them."""
    def _auth(player_id, expires_in=timedelta(hours=1)):
        settings = get_settings()
        claims = {"sub": str(player_id), "exp": datetime.now(timezone.utc) + expires_in}
        token = jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)
        return {"Authorization": f"Bearer {token}"}
    return _auth
