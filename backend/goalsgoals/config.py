"""
backend/goalsgoals/config.py

Purpose:
    Central settings loading for the fixture claims backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_BACKEND_ENV_FILE = _BACKEND_DIR / ".env"
_ROOT_ENV_FILE = _BACKEND_DIR.parent / ".env"


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"

    # Persistence backend: "file" (local JSON documents) or "mongo"
    STORAGE_BACKEND: str = "file"
    DATA_DIR: str = str(_BACKEND_DIR / "data")
    MONGO_URI: str = ""
    MONGO_DB: str = "goalsgoalsgoals"

    # JWT verification (tokens are issued by the auth service, not here)
    JWT_SECRET: str = ""
    JWT_SECRET_OLD: str = ""  # Set during rotation

    # Weekly budget for the external football data provider
    QUOTA_SOFT_LIMIT: int = 75  # New calls refused from here on
    QUOTA_HARD_LIMIT: int = 100  # Provider-enforced ceiling, informational
    QUOTA_WINDOW_DAYS: int = 7
    QUOTA_NEAR_LIMIT_RATIO: float = 0.9
    QUOTA_RECENT_CALLS: int = 10

    # Claim archival
    CLAIM_SWEEP_ENABLED: bool = True
    CLAIM_SWEEP_INTERVAL_MINUTES: int = 30

    # API-Football (api-sports.io)
    API_FOOTBALL_KEY: str = ""
    API_FOOTBALL_HOST: str = "v3.football.api-sports.io"
    API_FOOTBALL_TIMEOUT_SECONDS: float = 15.0
    API_FOOTBALL_MAX_RETRIES: int = 0  # Every retry spends weekly budget
    API_FOOTBALL_LEAGUE_IDS: str = "39,140,78,135,61"

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.QUOTA_SOFT_LIMIT <= 0:
            raise ValueError("QUOTA_SOFT_LIMIT must be positive")
        if self.QUOTA_HARD_LIMIT < self.QUOTA_SOFT_LIMIT:
            raise ValueError("QUOTA_HARD_LIMIT must be >= QUOTA_SOFT_LIMIT")
        if self.STORAGE_BACKEND not in ("file", "mongo"):
            raise ValueError("STORAGE_BACKEND must be 'file' or 'mongo'")
        return self

    @property
    def league_ids(self) -> list[int]:
        return [int(part) for part in self.API_FOOTBALL_LEAGUE_IDS.split(",") if part.strip()]


settings = Settings()
