from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Scarcity (normalised by scarcity.normalize_scarcity_config before use)
    SCARCITY_THRESHOLD: str = "2"
    SCARCITY_BEHAVIOR: str = "remind_only"

    # Allocation
    BUFFER_STAFF_FTE: float = 0.5
    EXTRA_COVERAGE_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
