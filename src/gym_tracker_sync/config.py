"""Configuration settings for the gym tracker sync engine."""
import os
from typing import Literal


EnvironmentType = Literal["development", "staging", "production"]


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Settings:
    """Application settings."""

    # Environment
    ENVIRONMENT: EnvironmentType = "development"
    LOG_LEVEL: str = "INFO"

    # Supabase
    SUPABASE_URL: str | None = None
    SUPABASE_ANON_KEY: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Local persistence
    DATA_DIR: str = ".gym-tracker"

    # Sync policy
    AUTO_SYNC_DELAY_SECONDS: float = 30.0
    REMOTE_MAX_ATTEMPTS: int = 3

    def __init__(self):
        # Environment
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env in ("development", "staging", "production"):
            self.ENVIRONMENT = env  # type: ignore
        else:
            self.ENVIRONMENT = "development"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Supabase
        self.SUPABASE_URL = os.getenv("SUPABASE_URL")
        self.SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
        self.SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

        # Local persistence
        self.DATA_DIR = os.getenv("GYM_TRACKER_DATA_DIR", ".gym-tracker")

        # Sync policy
        self.AUTO_SYNC_DELAY_SECONDS = _float_env("AUTO_SYNC_DELAY_SECONDS", 30.0)
        self.REMOTE_MAX_ATTEMPTS = max(1, _int_env("REMOTE_MAX_ATTEMPTS", 3))

    @property
    def supabase_key(self) -> str | None:
        return self.SUPABASE_SERVICE_ROLE_KEY or self.SUPABASE_ANON_KEY


settings = Settings()
