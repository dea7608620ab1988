"""
Episode bookkeeping shared by every scoring component.

Episodes are ordered by episode_number only; every interval endpoint in the
engine is an episode number.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from survivor_pool.core.errors import ConflictError, NotFoundError
from survivor_pool.models.models import Episode


async def get_episode_or_raise(db: AsyncSession, episode_id: int) -> Episode:
    result = await db.execute(select(Episode).where(Episode.id == episode_id))
    episode = result.scalar_one_or_none()
    if episode is None:
        raise NotFoundError(f"Episode {episode_id} not found")
    return episode


async def get_latest_episode_number(db: AsyncSession) -> int | None:
    result = await db.execute(select(func.max(Episode.episode_number)))
    return result.scalar()


async def find_current_episode_number(db: AsyncSession) -> int | None:
    """
    Episode number marked current, falling back to the highest known number.
    None when no episodes exist yet.
    """
    result = await db.execute(
        select(Episode.episode_number).where(Episode.is_current == True)
    )
    current = result.scalars().first()
    if current is not None:
        return current
    return await get_latest_episode_number(db)


async def get_current_episode_number(db: AsyncSession) -> int:
    """Like find_current_episode_number, but defaults to episode 1 before the season airs."""
    current = await find_current_episode_number(db)
    return current if current is not None else 1


async def get_next_episode_number(db: AsyncSession, after_episode_number: int) -> int:
    """First known episode number strictly greater than the given one."""
    result = await db.execute(
        select(func.min(Episode.episode_number)).where(
            Episode.episode_number > after_episode_number
        )
    )
    next_number = result.scalar()
    if next_number is None:
        # Next episode hasn't been created yet; numbers are sequential
        return after_episode_number + 1
    return next_number


async def count_episodes_between(db: AsyncSession, after_number: int, up_to_number: int) -> int:
    """Number of episodes with after_number < episode_number <= up_to_number."""
    if up_to_number <= after_number:
        return 0
    result = await db.execute(
        select(func.count()).select_from(Episode).where(
            Episode.episode_number > after_number,
            Episode.episode_number <= up_to_number,
        )
    )
    return result.scalar() or 0


async def set_current_episode(db: AsyncSession, episode_id: int) -> Episode:
    """Move the single "current episode" marker onto the given episode."""
    episode = await get_episode_or_raise(db, episode_id)
    await db.execute(
        update(Episode)
        .where(Episode.is_current == True, Episode.id != episode_id)
        .values(is_current=False)
    )
    episode.is_current = True
    await db.flush()
    return episode


async def create_episode(
    db: AsyncSession,
    episode_number: int,
    aired_date=None,
    is_current: bool = False,
) -> Episode:
    existing = await db.execute(select(Episode.id).where(Episode.episode_number == episode_number))
    if existing.first() is not None:
        raise ConflictError(f"Episode {episode_number} already exists")

    if is_current:
        await db.execute(
            update(Episode).where(Episode.is_current == True).values(is_current=False)
        )

    episode = Episode(episode_number=episode_number, aired_date=aired_date, is_current=is_current)
    db.add(episode)
    await db.flush()
    return episode


async def list_episodes(db: AsyncSession) -> list[Episode]:
    result = await db.execute(select(Episode).order_by(Episode.episode_number))
    return result.scalars().all()
