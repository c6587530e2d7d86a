"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from backend.config import settings

# --- Learners ---


def _check_timezone(value: str | None) -> str | None:
    if value is None:
        return value
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {value}") from exc
    return value


class LearnerCreateRequest(BaseModel):
    """Request to register a learner."""

    name: str = Field(min_length=1, max_length=100)
    email: str | None = None
    daily_new_words: int = Field(
        default=settings.default_daily_new_words,
        ge=settings.min_daily_new_words,
        le=settings.max_daily_new_words,
    )
    travel_weight: float = Field(default=settings.default_travel_weight, ge=0.0, le=1.0)
    timezone: str = settings.default_timezone

    @field_validator("timezone")
    @classmethod
    def valid_timezone(cls, value: str | None) -> str | None:
        return _check_timezone(value)


class LearnerSettingsRequest(BaseModel):
    """Partial update of a learner's planning settings."""

    daily_new_words: int | None = Field(
        default=None, ge=settings.min_daily_new_words, le=settings.max_daily_new_words
    )
    travel_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    timezone: str | None = None

    @field_validator("timezone")
    @classmethod
    def valid_timezone(cls, value: str | None) -> str | None:
        return _check_timezone(value)


class LearnerResponse(BaseModel):
    id: int
    name: str
    email: str | None
    daily_new_words: int
    travel_weight: float
    timezone: str


# --- Session ---


class PracticeDrillResponse(BaseModel):
    """A practice drill as shown to the learner (without the answer)."""

    sentence: str
    options: list[str]
    word: str


class PlanItemResponse(BaseModel):
    type: str  # review, learn, practice
    vocabulary_id: int
    card_id: int | None = None
    practice: PracticeDrillResponse | None = None


class SessionResponse(BaseModel):
    """A session's plan and progress."""

    session_id: int
    learner_id: int
    session_date: date
    status: str  # in_progress, completed
    current_index: int
    total_items: int
    remaining: int
    review_count: int
    learn_count: int
    practice_count: int
    new_words_learned: int
    words_reviewed: int
    practice_correct: int
    items: list[PlanItemResponse]


class NextItemResponse(BaseModel):
    """The current item of a session, with the word to show."""

    index: int
    remaining: int
    item: PlanItemResponse
    word: str
    definition: str
    definition_zh: str | None = None
    pronunciation: str | None = None
    example_sentences: list | None = None


class RateRequest(BaseModel):
    """Rating for the current review or learn item."""

    rating: int = Field(ge=1, le=4)  # 1=forgot, 2=hard, 3=good, 4=easy
    duration_ms: int = Field(default=0, ge=0)


class RateResponse(BaseModel):
    card_id: int
    state: str
    next_due: datetime
    next_review: str  # human-readable, e.g. "in 3 days"
    interval_days: float
    retrievability: float
    remaining: int
    session_complete: bool


class PracticeRequest(BaseModel):
    response: str
    duration_ms: int = Field(default=0, ge=0)


class PracticeResponse(BaseModel):
    correct: bool
    correct_answer: str
    remaining: int
    session_complete: bool


# --- Cards ---


class CardResponse(BaseModel):
    """A learner's card with its memory state."""

    card_id: int
    vocabulary_id: int
    word: str
    state: str
    mastery_level: str
    due: datetime
    stability: float
    difficulty: float
    reps: int
    lapses: int
    last_review: datetime | None
    retrievability: float


class RatingPreview(BaseModel):
    rating: int
    label: str
    state: str
    next_due: datetime
    next_review: str
    interval_days: float


class CardPreviewResponse(BaseModel):
    card_id: int
    outcomes: list[RatingPreview]


# --- Stats ---


class LearnerStatsResponse(BaseModel):
    """Overall statistics for a learner."""

    total_cards: int
    cards_due: int
    mastery: dict[str, int]  # mastery level -> card count
    unseen_vocabulary: int
    average_retention: float | None
    streak_days: int
    total_reviews: int
