from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin

TRAVEL = "travel"
SOFTWARE = "software"
CATEGORIES = (TRAVEL, SOFTWARE)


class Vocabulary(Base, TimestampMixin):
    __tablename__ = "vocabulary"
    __table_args__ = (Index("ix_vocabulary_category_tier", "category", "difficulty_tier"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    word: Mapped[str] = mapped_column(String(200), nullable=False)
    pronunciation: Mapped[str | None] = mapped_column(String(200), nullable=True)  # IPA
    definition: Mapped[str] = mapped_column(Text, nullable=False)  # English definition
    definition_zh: Mapped[str | None] = mapped_column(Text, nullable=True)  # Chinese translation
    category: Mapped[str] = mapped_column(String(20), nullable=False)  # travel, software
    subcategory: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    difficulty_tier: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )  # 1=beginner, 2=intermediate, 3=advanced
    example_sentences: Mapped[list | None] = mapped_column(JSON, nullable=True)  # [{en, zh, context}]
    is_phrase: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    cards: Mapped[list["Card"]] = relationship(back_populates="vocabulary")  # type: ignore[name-defined] # noqa: F821
