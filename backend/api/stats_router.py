"""API routes for learner statistics and dashboard data."""

import logging
from collections import Counter
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import and_, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import LearnerStatsResponse
from backend.config import utcnow
from backend.database import get_session
from backend.models.card import Card
from backend.models.learner import Learner
from backend.models.review_log import ReviewLog
from backend.models.vocabulary import Vocabulary
from backend.srs.codec import MasteryLevel, mastery_level
from backend.srs.fsrs import Rating, State

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])

RETENTION_WINDOW = timedelta(days=30)


async def mastery_distribution(db: AsyncSession, learner_id: int) -> dict[str, int]:
    """Count a learner's cards per mastery level."""
    rows = await db.execute(
        select(Card.state, Card.stability).where(Card.learner_id == learner_id)
    )
    levels = Counter(mastery_level(state, stability) for state, stability in rows)
    return {level.value: levels.get(level, 0) for level in MasteryLevel}


async def count_due(db: AsyncSession, learner_id: int, now: datetime) -> int:
    stmt = select(func.count(Card.id)).where(
        and_(Card.learner_id == learner_id, Card.state != int(State.NEW), Card.due <= now)
    )
    return (await db.execute(stmt)).scalar() or 0


async def count_unseen(db: AsyncSession, learner_id: int) -> int:
    seen = select(Card.vocabulary_id).where(Card.learner_id == learner_id)
    stmt = select(func.count(Vocabulary.id)).where(Vocabulary.id.not_in(seen))
    return (await db.execute(stmt)).scalar() or 0


async def recent_retention(db: AsyncSession, learner_id: int, now: datetime) -> float | None:
    """Share of reviews in the last 30 days not rated Forgot, or None without reviews."""
    recalled = func.sum(case((ReviewLog.rating > int(Rating.FORGOT), 1), else_=0))
    stmt = select(func.count(ReviewLog.id), recalled).where(
        and_(
            ReviewLog.learner_id == learner_id,
            ReviewLog.reviewed_at >= now - RETENTION_WINDOW,
        )
    )
    total, passed = (await db.execute(stmt)).one()
    if not total:
        return None
    return round((passed or 0) / total, 3)


async def review_dates(db: AsyncSession, learner_id: int) -> list[date]:
    """Distinct days with at least one review, newest first."""
    day = func.date(ReviewLog.reviewed_at)
    stmt = select(distinct(day)).where(ReviewLog.learner_id == learner_id).order_by(day.desc())
    return [date.fromisoformat(str(value)) for value in (await db.execute(stmt)).scalars()]


def streak_length(dates: list[date], today: date) -> int:
    """Count consecutive review days ending today, or yesterday if today has none yet."""
    if not dates:
        return 0
    expected = today if dates[0] == today else today - timedelta(days=1)
    streak = 0
    for day in dates:
        if day != expected:
            break
        streak += 1
        expected -= timedelta(days=1)
    return streak


@router.get("/{learner_id}", response_model=LearnerStatsResponse)
async def get_learner_stats(
    learner_id: int,
    db: AsyncSession = Depends(get_session),
) -> LearnerStatsResponse:
    """Get overall statistics for a learner."""
    if await db.get(Learner, learner_id) is None:
        raise HTTPException(status_code=404, detail=f"Learner {learner_id} not found")
    now = utcnow()

    mastery = await mastery_distribution(db, learner_id)
    total_reviews = (
        await db.execute(
            select(func.count(ReviewLog.id)).where(ReviewLog.learner_id == learner_id)
        )
    ).scalar() or 0

    return LearnerStatsResponse(
        total_cards=sum(mastery.values()),
        cards_due=await count_due(db, learner_id, now),
        mastery=mastery,
        unseen_vocabulary=await count_unseen(db, learner_id),
        average_retention=await recent_retention(db, learner_id, now),
        streak_days=streak_length(await review_dates(db, learner_id), now.date()),
        total_reviews=total_reviews,
    )
