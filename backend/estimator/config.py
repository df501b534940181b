"""
Runtime settings read from the environment (``.env`` is loaded in dev).
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", ""))
    extraction_api_url: str = field(default_factory=lambda: os.getenv("EXTRACTION_API_URL", ""))
    redetect_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("REDETECT_TIMEOUT_SECONDS", "120"))
    )
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_logs: bool = field(default_factory=lambda: os.getenv("LOG_FORMAT", "json").lower() != "text")
    cors_origins: List[str] = field(
        default_factory=lambda: _csv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000")
    )
    celery_broker_url: str = field(
        default_factory=lambda: os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    )
    celery_result_backend: str = field(
        default_factory=lambda: os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
    )
    db_pool_size: int = field(default_factory=lambda: int(os.getenv("DB_POOL_SIZE", "10")))
    db_max_overflow: int = field(default_factory=lambda: int(os.getenv("DB_MAX_OVERFLOW", "20")))
    # Max pages computed concurrently during a job recalculation
    page_fanout_limit: int = field(default_factory=lambda: int(os.getenv("PAGE_FANOUT_LIMIT", "8")))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
