from pydantic import BaseModel, Field
from datetime import datetime

from survivor_pool.models.models import EventCategory
from survivor_pool.schemas.contestants import PickReplacement, UnresolvedPick


class EpisodeCreate(BaseModel):
    episode_number: int = Field(..., gt=0)
    aired_date: datetime | None = None
    is_current: bool = False


class EpisodeResponse(BaseModel):
    id: int
    episode_number: int
    is_current: bool
    predictions_locked: bool
    aired_date: datetime | None

    model_config = {"from_attributes": True}


class EventTypeResponse(BaseModel):
    id: int
    name: str
    display_name: str
    category: EventCategory
    point_value: int
    description: str | None
    is_active: bool

    model_config = {"from_attributes": True}


class ContestantEventInput(BaseModel):
    contestant_id: int
    event_type_id: int


class EventsSubmit(BaseModel):
    events: list[ContestantEventInput] = Field(..., min_length=1)


class ContestantEventResponse(BaseModel):
    id: int
    episode_id: int
    contestant_id: int
    event_type_id: int
    point_value: int
    created_by: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class RecordedEvent(BaseModel):
    id: int
    contestant_id: int
    event_type_id: int
    event_type: str
    point_value: int


class PredictionScoreResult(BaseModel):
    correct: int
    incorrect: int
    points_awarded: int


class EliminationFanOut(BaseModel):
    contestant_id: int
    elimination_episode: int | None
    replacements: list[PickReplacement]
    unresolved: list[UnresolvedPick]
    predictions: PredictionScoreResult | None
    failures: list[dict]


class EventsRecordedResponse(BaseModel):
    episode_id: int
    events: list[RecordedEvent]
    eliminations: list[EliminationFanOut]
    contestant_totals: dict[int, int]


class EventDeletedResponse(BaseModel):
    deleted_event_id: int
    contestant_id: int
    total_score: int
