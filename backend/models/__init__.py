"""SQLAlchemy ORM models for the vocabulary SRS database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.learner import Learner
from backend.models.review_log import ReviewLog
from backend.models.study_session import StudySession
from backend.models.vocabulary import Vocabulary

__all__ = ["Base", "Card", "Learner", "ReviewLog", "StudySession", "Vocabulary"]
