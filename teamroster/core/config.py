# teamroster/core/config.py
from __future__ import annotations

import json
from typing import Any, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


Environment = Literal["local", "dev", "staging", "prod"]

_DEV_SECRET = "dev-only-roster-secret"


def _split_origins(raw: Any) -> List[str]:
    """JSON array or comma-separated string -> list of origins."""
    if isinstance(raw, (list, tuple)):
        return [str(o) for o in raw]
    text = str(raw or "").strip()
    if text.startswith("["):
        try:
            return [str(o) for o in json.loads(text)]
        except ValueError:
            pass
    return [o.strip() for o in text.split(",") if o.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # service
    APP_NAME: str = "TeamRosterAPI"
    APP_ENV: Environment = "local"
    SECRET_KEY: str = Field(default=_DEV_SECRET, description="HMAC key for session tokens")
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str | List[str] = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        description="Allowed browser origins, JSON list or comma-separated",
    )

    # storage; unset means a local sqlite file
    DATABASE_URL: Optional[str] = None

    # actor recorded on audit rows when a request carries no identity
    DEFAULT_ACTOR_ID: int = 1

    # roster rules
    DEFAULT_MAX_PLAYERS: int = 20
    TEAM_NAME_MAX_LENGTH: int = 100
    POSITION_MIN_COVERAGE: int = 2
    JERSEY_NUMBER_MIN: int = 0
    JERSEY_NUMBER_MAX: int = 99

    # coach-assigned webhook; unset = log only
    COACH_NOTIFY_URL: Optional[str] = None
    COACH_NOTIFY_TIMEOUT: float = 10.0

    @property
    def IS_LOCAL(self) -> bool:
        return self.APP_ENV == "local"

    @property
    def jersey_range(self) -> range:
        return range(self.JERSEY_NUMBER_MIN, self.JERSEY_NUMBER_MAX + 1)

    @field_validator("CORS_ORIGINS")
    @classmethod
    def _origins_as_list(cls, v):
        return _split_origins(v)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"

    def validate_at_startup(self) -> None:
        """Raise once, listing every misconfiguration found."""
        problems: list[str] = []

        if not self.IS_LOCAL:
            if not self.DATABASE_URL:
                problems.append("DATABASE_URL must be set outside local.")
            if self.SECRET_KEY == _DEV_SECRET:
                problems.append("SECRET_KEY must be overridden outside local.")
            if not self.CORS_ORIGINS:
                problems.append("CORS_ORIGINS needs at least one origin outside local.")

        if self.JERSEY_NUMBER_MIN < 0 or self.JERSEY_NUMBER_MAX < self.JERSEY_NUMBER_MIN:
            problems.append("JERSEY_NUMBER_MIN..JERSEY_NUMBER_MAX must be a non-empty range starting at 0 or above.")
        if self.POSITION_MIN_COVERAGE < 1:
            problems.append("POSITION_MIN_COVERAGE must be at least 1.")

        if problems:
            raise RuntimeError("Invalid configuration: " + " ".join(problems))


settings = Settings()
