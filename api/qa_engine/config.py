from pydantic_settings import BaseSettings, SettingsConfigDict

from qa_engine.services.quality import AQSWeights


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    database_url: str = "postgresql+asyncpg://qa:qa@localhost:5432/qa_engine"
    redis_url: str = "redis://localhost:6379"
    app_name: str = "QA Reputation Engine"
    debug: bool = False
    rate_limit_read_per_minute: int = 60
    rate_limit_write_per_minute: int = 20
    api_key_header_name: str = "X-API-Key"

    # Answer Quality Score weights (AQS__ACCEPTED=40 etc.)
    aqs: AQSWeights = AQSWeights()

    # Recompute dispatcher
    recompute_timeout_seconds: float = 5.0
    mutation_retry_attempts: int = 3

    # Trending
    trending_lookback_days: int = 30
    trending_candidate_limit: int = 100
    trending_default_limit: int = 5
    trending_max_limit: int = 20

    # Leaderboard
    leaderboard_default_limit: int = 10
    leaderboard_max_limit: int = 50

    # Reconciliation worker
    reconciliation_interval_minutes: int = 60
    reconciliation_max_age_days: int = 7
    reconciliation_batch_size: int = 100


settings = Settings()
