from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Text,
    UniqueConstraint, CheckConstraint, Index, Enum as SAEnum,
)
from sqlalchemy.sql import func
from survivor_pool.core.database import Base
import enum


# --- Enums ---

class EventCategory(str, enum.Enum):
    BASIC = "basic"
    PENALTY = "penalty"
    BONUS = "bonus"


# --- Models ---

class Contestant(Base):
    __tablename__ = "contestants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    profession = Column(String(200))
    image_url = Column(Text)
    current_tribe = Column(String(100))
    is_eliminated = Column(Boolean, default=False, nullable=False)
    is_winner = Column(Boolean, default=False, nullable=False)
    elimination_episode = Column(Integer)  # Episode number, null while still in the game
    total_score = Column(Integer, default=0, nullable=False)  # Cached, rebuilt from contestant_events
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Episode(Base):
    __tablename__ = "episodes"

    id = Column(Integer, primary_key=True, index=True)
    episode_number = Column(Integer, unique=True, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)
    predictions_locked = Column(Boolean, default=False, nullable=False)
    aired_date = Column(DateTime)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class EventType(Base):
    """
    Catalog of scorable events. point_value is copied onto each
    ContestantEvent when it is recorded, so editing the catalog never
    rewrites history.
    """
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)  # Machine-readable, e.g. "eliminated"
    display_name = Column(String(100), nullable=False)
    category = Column(SAEnum(EventCategory), default=EventCategory.BASIC, nullable=False)
    point_value = Column(Integer, nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ContestantEvent(Base):
    """One thing that happened to one contestant in one episode."""
    __tablename__ = "contestant_events"

    id = Column(Integer, primary_key=True, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False, index=True)
    contestant_id = Column(Integer, ForeignKey("contestants.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type_id = Column(Integer, ForeignKey("event_types.id"), nullable=False)
    point_value = Column(Integer, nullable=False)  # Snapshot of event_types.point_value
    created_by = Column(Integer, ForeignKey("players.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Player(Base):
    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    display_name = Column(String(100), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    has_submitted_rankings = Column(Boolean, default=False, nullable=False)
    sole_survivor_id = Column(Integer, ForeignKey("contestants.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Ranking(Base):
    __tablename__ = "rankings"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    contestant_id = Column(Integer, ForeignKey("contestants.id", ondelete="CASCADE"), nullable=False)
    rank = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("player_id", "contestant_id", name="uq_ranking_player_contestant"),
    )


class DraftPick(Base):
    """
    One interval of roster membership. start_episode / end_episode are
    episode numbers; end_episode is null while the pick is still held.
    """
    __tablename__ = "draft_picks"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    contestant_id = Column(Integer, ForeignKey("contestants.id", ondelete="CASCADE"), nullable=False, index=True)
    pick_number = Column(Integer, nullable=False)  # Overall draft slot, carried over by replacements
    start_episode = Column(Integer, nullable=False, default=1)
    end_episode = Column(Integer)
    is_replacement = Column(Boolean, default=False, nullable=False)
    replaced_contestant_id = Column(Integer, ForeignKey("contestants.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SoleSurvivorHistory(Base):
    __tablename__ = "sole_survivor_history"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    contestant_id = Column(Integer, ForeignKey("contestants.id", ondelete="CASCADE"), nullable=False)
    start_episode = Column(Integer, nullable=False)  # Episode number
    end_episode = Column(Integer)  # Episode number, null = current selection
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_sole_survivor_history_open", "player_id", "end_episode"),
    )


class EliminationPrediction(Base):
    __tablename__ = "elimination_predictions"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True)
    episode_id = Column(Integer, ForeignKey("episodes.id", ondelete="CASCADE"), nullable=False, index=True)
    tribe = Column(String(100), nullable=False)
    contestant_id = Column(Integer, ForeignKey("contestants.id", ondelete="CASCADE"), nullable=False)
    is_correct = Column(Boolean)  # Null until scored
    scored_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("player_id", "episode_id", "tribe", name="uq_prediction_player_episode_tribe"),
    )


class DraftStatus(Base):
    """Single-row lock guarding the one-time draft."""
    __tablename__ = "draft_status"

    id = Column(Integer, primary_key=True, default=1)
    is_complete = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint("id = 1", name="ck_draft_status_single_row"),
    )
