"""
Default event-type catalog seeder.
Creates the standard scorable events. The admin can then change point
values or deactivate events in the table without touching code.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from survivor_pool.models.models import EventType, EventCategory


DEFAULT_EVENT_TYPES = [
    {"name": "individual_immunity_win", "display_name": "Individual Immunity Win", "point_value": 3, "category": EventCategory.BASIC},
    {"name": "team_immunity_win", "display_name": "Team Immunity Win", "point_value": 2, "category": EventCategory.BASIC},
    {"name": "individual_reward_win", "display_name": "Individual Reward Win", "point_value": 2, "category": EventCategory.BASIC},
    {"name": "team_reward_win", "display_name": "Team Reward Win", "point_value": 1, "category": EventCategory.BASIC},
    {"name": "found_hidden_idol", "display_name": "Found Hidden Immunity Idol", "point_value": 3, "category": EventCategory.BASIC},
    {"name": "played_idol_successfully", "display_name": "Played Idol Successfully", "point_value": 2, "category": EventCategory.BASIC},
    {"name": "tribe_member_eliminated", "display_name": "Survived Tribal Council", "point_value": 1, "category": EventCategory.BASIC, "description": "Tribe went to tribal and this contestant stayed"},
    {"name": "read_tree_mail", "display_name": "Read Tree Mail", "point_value": 1, "category": EventCategory.BASIC},
    {"name": "made_interesting_food", "display_name": "Made Interesting Food", "point_value": 1, "category": EventCategory.BASIC},
    {"name": "made_fire", "display_name": "Made Fire", "point_value": 1, "category": EventCategory.BASIC},
    {"name": "played_shot_in_dark", "display_name": "Played Shot in the Dark", "point_value": 1, "category": EventCategory.BASIC},
    {"name": "got_immunity_shot_in_dark", "display_name": "Got Immunity from Shot in the Dark", "point_value": 4, "category": EventCategory.BASIC},
    {"name": "eliminated", "display_name": "Eliminated", "point_value": -1, "category": EventCategory.PENALTY},
    {"name": "eliminated_medical", "display_name": "Medically Evacuated", "point_value": -1, "category": EventCategory.PENALTY},
    {"name": "voted_out_with_idol", "display_name": "Voted Out With Idol", "point_value": -3, "category": EventCategory.PENALTY},
    {"name": "made_final_three", "display_name": "Made Final Three", "point_value": 10, "category": EventCategory.BONUS},
]


async def seed_default_event_types(db: AsyncSession) -> list[EventType]:
    """Create any default event types that don't exist yet. Returns the ones created."""
    result = await db.execute(select(EventType.name))
    existing = {row[0] for row in result.all()}

    created = []
    for data in DEFAULT_EVENT_TYPES:
        if data["name"] in existing:
            continue
        event_type = EventType(**data)
        db.add(event_type)
        created.append(event_type)
    await db.flush()
    return created


async def list_event_types(db: AsyncSession, active_only: bool = False) -> list[EventType]:
    query = select(EventType).order_by(EventType.category, EventType.name)
    if active_only:
        query = query.where(EventType.is_active == True)
    result = await db.execute(query)
    return result.scalars().all()
