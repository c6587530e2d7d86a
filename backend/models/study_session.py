"""Daily study session: one persisted plan per learner per calendar day."""

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class StudySession(Base, TimestampMixin):
    __tablename__ = "study_sessions"
    __table_args__ = (
        # Concurrent plan builds for the same day collapse onto one row
        UniqueConstraint("learner_id", "session_date", name="uq_study_sessions_learner_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[int] = mapped_column(ForeignKey("learners.id"), nullable=False)
    session_date: Mapped[date] = mapped_column(Date, nullable=False)  # learner-local date
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="in_progress"
    )  # in_progress, completed
    plan: Mapped[dict] = mapped_column(JSON, nullable=False)  # {"items": [...]}, never rewritten
    current_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_words_learned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    words_reviewed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    practice_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    learner: Mapped["Learner"] = relationship(back_populates="study_sessions")  # type: ignore[name-defined] # noqa: F821
