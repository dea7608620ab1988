"""
Seed script: creates tables, the default event types and the draft lock row.
Run with: python -m survivor_pool.scripts.seed
"""
import asyncio

from survivor_pool.core.database import AsyncSessionLocal, engine, Base
from survivor_pool.services.draft import ensure_draft_status_row
from survivor_pool.services.event_type_seeder import seed_default_event_types

import survivor_pool.models.models  # noqa: F401


async def seed():
    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        created = await seed_default_event_types(db)
        if created:
            for event_type in created:
                print(f"  Created event type: {event_type.name} ({event_type.point_value:+d})")
        else:
            print("  Event types already seeded, skipping.")

        await ensure_draft_status_row(db)
        print("  Draft status row ready.")

        await db.commit()

    await engine.dispose()
    print("\nSeed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
