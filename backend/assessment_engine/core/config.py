from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    session_log_level: str | None = None

    # Session timing; 0 disables the background ticker (caller drives tick())
    tick_interval_seconds: float = 1.0
    # Finished attempts stay readable this long before the registry drops them
    session_retention_seconds: float = 3600.0

    # Content Provider / Grading Service HTTP clients
    http_timeout_seconds: float = 10.0

    # Results insights thresholds
    efficient_time_seconds: int = 300
    slow_time_seconds: int = 1800


settings = Settings()
