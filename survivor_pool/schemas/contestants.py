from pydantic import BaseModel


class ContestantResponse(BaseModel):
    id: int
    name: str
    profession: str | None
    image_url: str | None
    current_tribe: str | None
    is_eliminated: bool
    is_winner: bool
    elimination_episode: int | None
    total_score: int
    trend: str | None = None

    model_config = {"from_attributes": True}


class ContestantUpdate(BaseModel):
    name: str | None = None
    profession: str | None = None
    image_url: str | None = None
    current_tribe: str | None = None
    is_winner: bool | None = None
    is_eliminated: bool | None = None


class PickReplacement(BaseModel):
    player_id: int
    pick_number: int
    closed_pick_id: int
    new_pick_id: int
    replaced_contestant_id: int
    replacement_contestant_id: int
    closed_at_episode: int
    start_episode: int


class UnresolvedPick(BaseModel):
    player_id: int
    pick_id: int
    pick_number: int
    contestant_id: int


class EliminationResult(BaseModel):
    contestant_id: int
    elimination_episode: int | None
    replacements: list[PickReplacement] = []
    unresolved: list[UnresolvedPick] = []
    failures: list[dict] = []


class ContestantUpdateResponse(BaseModel):
    contestant: ContestantResponse
    elimination: EliminationResult | None = None


class EpisodeScoreItem(BaseModel):
    episode_id: int
    episode_number: int
    is_current: bool
    score: int


class ContestantEpisodeScoresResponse(BaseModel):
    contestant_id: int
    total_score: int
    trend: str
    episodes: list[EpisodeScoreItem]
