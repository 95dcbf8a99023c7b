"""Application configuration via environment variables."""
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Timebox Planner"
    debug: bool = False
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./timebox_planner.db"

    # Identity: header set by the authenticating proxy in front of the app
    user_id_header: str = "X-User-Id"

    # Logging
    log_dir: Path = Path.home() / ".logs" / "timebox"

    # Flag repair job (0 disables it)
    reconcile_interval_minutes: int = 30


settings = Settings()
