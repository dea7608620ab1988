from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Survivor Pool"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/survivor_pool"

    # JWT (tokens are issued by the auth service, we only verify them)
    secret_key: str = "change-me"
    algorithm: str = "HS256"

    # Scoring
    prediction_reward: int = 3  # per correct elimination prediction
    winner_bonus: int = 25
    winner_bonus_selection_deadline: int = 2  # sole survivor picked by this episode
    sole_survivor_episode_bonus: int = 1
    elimination_compensation_per_episode: int = 1

    # Draft
    picks_per_player: int = 2

    # Event types that count as an elimination
    elimination_event_types: list[str] = ["eliminated", "eliminated_medical"]

    # Leaderboard cache
    leaderboard_cache_ttl_seconds: float = 300.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache()
def get_settings() -> Settings:
    return Settings()
