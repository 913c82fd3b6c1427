from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_prefix": "PODHEALTH_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Storage
    db_path: str = "data/podhealth.db"

    # Identifies this running instance in the health and session-log tables
    server_id: str = "default"

    # Health check scheduling
    boundary_guard_seconds: float = 2.0  # pushes the target past a boundary we are sitting on
    stale_session_minutes: int = 3  # open sessions untouched this long get closed

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Logging
    log_level: str = "INFO"


settings = Settings()
