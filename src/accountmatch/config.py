"""Application settings loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables prefixed with AM_."""

    # Database
    database_url: str = ""
    store_timeout: float = 30.0
    insert_batch_size: int = 500

    # Judge backend (Ollama-compatible text completion)
    judge_url: str = "http://localhost:11434"
    judge_model: str = "deepseek-v3.1:latest"
    judge_max_tokens: int = 200
    judge_timeout: float = 60.0

    # AI validation
    ai_enabled: bool = True
    ai_min_score: int = 20
    ai_max_score: int = 100
    ai_batch_size: int = 5
    ai_parallel_batches: int = 2

    # Matching
    match_threshold: int = 85
    max_possible_score: int = 195
    chunk_size: int = 10
    candidate_limit: int = 20
    default_country: str = "australia"

    model_config = {"env_file": ".env", "env_prefix": "AM_"}


def get_settings() -> Settings:
    """Return a Settings instance built from the current environment."""
    return Settings()
