from pydantic import BaseModel
from datetime import datetime

from survivor_pool.schemas.contestants import EpisodeScoreItem, PickReplacement


class PlayerScoreResponse(BaseModel):
    player_id: int
    display_name: str
    draft_score: int
    sole_survivor_score: int
    sole_survivor_bonus: int
    prediction_bonus: int
    elimination_compensation: int
    total: int
    failed_components: list[str] = []


class LeaderboardEntry(PlayerScoreResponse):
    rank: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


class DraftPickBreakdownItem(BaseModel):
    pick_id: int
    pick_number: int
    contestant_id: int
    contestant_name: str
    is_eliminated: bool
    start_episode: int
    end_episode: int | None
    is_active: bool
    is_replacement: bool
    replaced_contestant_id: int | None
    range_score: int
    episode_scores: list[EpisodeScoreItem]


class SoleSurvivorBonusResponse(BaseModel):
    episode_bonus: int
    winner_bonus: int
    total_bonus: int
    episode_count: int


class SoleSurvivorHistoryItem(BaseModel):
    id: int
    contestant_id: int
    start_episode: int
    end_episode: int | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class SoleSurvivorChange(BaseModel):
    contestant_id: int


class SoleSurvivorChangeResponse(BaseModel):
    changed: bool
    player_id: int
    sole_survivor_id: int
    current_episode: int
    draft_pick_swap: PickReplacement | None = None


class RecalculateResponse(BaseModel):
    contestants_updated: int
    failed_contestant_ids: list[int]
