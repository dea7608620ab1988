from pydantic import BaseModel, Field
from datetime import datetime


class PredictionInput(BaseModel):
    tribe: str = Field(..., min_length=1)
    contestant_id: int


class PredictionsSubmit(BaseModel):
    predictions: list[PredictionInput] = Field(..., min_length=1)


class PredictionResponse(BaseModel):
    id: int
    player_id: int
    episode_id: int
    tribe: str
    contestant_id: int
    is_correct: bool | None
    scored_at: datetime | None

    model_config = {"from_attributes": True}


class PredictionLockUpdate(BaseModel):
    locked: bool


class PredictionRecalculateResponse(BaseModel):
    episode_id: int
    eliminations_scored: int
    correct: int
    incorrect: int
    points_awarded: int


class OverallPredictionStats(BaseModel):
    total_predictions: int
    scored_predictions: int
    correct_predictions: int
    accuracy: float
    total_players: int


class EpisodePredictionStats(BaseModel):
    episode_id: int
    episode_number: int
    total_predictions: int
    scored_predictions: int
    correct_predictions: int
    accuracy: float
    players_participated: int
    participation_rate: float


class PredictionStatisticsResponse(BaseModel):
    overall: OverallPredictionStats
    by_episode: list[EpisodePredictionStats]
