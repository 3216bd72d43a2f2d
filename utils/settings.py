"""
Application settings read from the environment once and injected where needed
"""
import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field


def _split_csv(raw: Optional[str]) -> List[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "") or default)
    except ValueError:
        return default


class Settings(BaseModel):
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    forms_data_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "data", "forms"))
    redis_url: Optional[str] = None
    evaluate_rate_limit: str = "120/minute"
    max_fields: int = 500
    cors_allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from process environment variables"""
        defaults = cls()
        return cls(
            env=(os.getenv("ENV") or os.getenv("APP_ENV") or defaults.env),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
            log_format=os.getenv("LOG_FORMAT", defaults.log_format),
            forms_data_dir=os.getenv("FORMS_DATA_DIR") or defaults.forms_data_dir,
            redis_url=os.getenv("REDIS_URL") or None,
            evaluate_rate_limit=os.getenv("EVALUATE_RATE_LIMIT") or defaults.evaluate_rate_limit,
            max_fields=_int_env("MAX_FIELDS", defaults.max_fields),
            cors_allowed_origins=_split_csv(os.getenv("CORS_ALLOWED_ORIGINS")) or defaults.cors_allowed_origins,
        )


@lru_cache()
def get_settings() -> Settings:
    """FastAPI dependency; tests override it through app.dependency_overrides"""
    return Settings.from_env()
