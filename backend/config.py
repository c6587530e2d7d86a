from datetime import UTC, date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


def local_date(now: datetime, timezone: str = "UTC") -> date:
    """Return the calendar date of a naive UTC instant in the given IANA timezone."""
    return now.replace(tzinfo=UTC).astimezone(ZoneInfo(timezone)).date()


class Settings(BaseSettings):
    app_name: str = "Vocab SRS"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'vocab_srs.db'}"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_retries: int = 3
    anthropic_rate_limit_rpm: int = 50
    anthropic_timeout_seconds: float = 30.0
    llm_input_price_per_million: float = 3.0
    llm_output_price_per_million: float = 15.0

    # Memory model
    target_retention: float = 0.9
    maximum_interval_days: int = 365
    enable_fuzz: bool = True
    learning_steps_minutes: list[float] = [1.0, 10.0]
    relearning_steps_minutes: list[float] = [10.0]

    # Session planning
    default_daily_new_words: int = 10
    min_daily_new_words: int = 5
    max_daily_new_words: int = 20
    default_travel_weight: float = 0.5
    default_timezone: str = "UTC"
    review_share: float = 0.6  # review slots per new word
    max_practice_items: int = 3
    drill_timeout_seconds: float = 20.0

    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    debug: bool = False

    model_config = {"env_prefix": "VOCAB_SRS_", "env_file": ".env"}


settings = Settings()
