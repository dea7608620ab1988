from pydantic import BaseModel, Field
from datetime import datetime


class RankingItem(BaseModel):
    contestant_id: int
    rank: int | None = Field(None, gt=0)


class RankingsSubmit(BaseModel):
    rankings: list[RankingItem] = Field(..., min_length=1)
    sole_survivor_id: int


class RankingsSubmitResponse(BaseModel):
    player_id: int
    rankings_count: int
    sole_survivor_id: int


class RankingResponse(BaseModel):
    contestant_id: int
    rank: int

    model_config = {"from_attributes": True}


class MissingPlayer(BaseModel):
    player_id: int
    display_name: str


class DraftStatusResponse(BaseModel):
    is_complete: bool
    completed_at: datetime | None
    pick_count: int
    total_players: int
    submitted_count: int
    missing_players: list[MissingPlayer]


class DraftPickResponse(BaseModel):
    id: int
    player_id: int
    contestant_id: int
    pick_number: int
    start_episode: int
    end_episode: int | None
    is_replacement: bool
    replaced_contestant_id: int | None

    model_config = {"from_attributes": True}


class DraftRunResponse(BaseModel):
    picks: list[DraftPickResponse]
