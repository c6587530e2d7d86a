from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import settings
from backend.models.base import Base, TimestampMixin


class Learner(Base, TimestampMixin):
    __tablename__ = "learners"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    daily_new_words: Mapped[int] = mapped_column(
        Integer, nullable=False, default=settings.default_daily_new_words
    )
    travel_weight: Mapped[float] = mapped_column(
        Float, nullable=False, default=settings.default_travel_weight
    )  # share of new words drawn from the travel category
    timezone: Mapped[str] = mapped_column(
        String(50), nullable=False, default=settings.default_timezone
    )  # IANA name, defines the learner's calendar day

    cards: Mapped[list["Card"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
    study_sessions: Mapped[list["StudySession"]] = relationship(back_populates="learner")  # type: ignore[name-defined] # noqa: F821
