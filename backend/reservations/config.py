"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./reservations.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # External calendar
    CALENDAR_PROVIDER: str = "disabled"  # disabled | graph
    CALENDAR_OWNER: str = ""
    CALENDAR_ID: str = ""
    GRAPH_BASE_URL: str = "https://graph.microsoft.com/v1.0"
    GRAPH_ACCESS_TOKEN: str = ""
    GRAPH_TIMEOUT_SECONDS: float = 15.0

    # When False, writes without an expected version are accepted and logged.
    REQUIRE_EXPECTED_VERSION: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
