"""Daily session planning.

Builds one ordered activity queue per learner per calendar day, combining
due reviews, unseen vocabulary and synthesized practice drills. A plan is
built at most once per (learner, day) and never rewritten afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TypeVar

import anthropic
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import local_date, settings, utcnow
from backend.models.card import Card
from backend.models.learner import Learner
from backend.models.study_session import StudySession
from backend.models.vocabulary import SOFTWARE, TRAVEL, Vocabulary
from backend.srs.drills import DrillGenerator, DrillWord, PracticeDrill
from backend.srs.errors import (
    DrillGenerationError,
    InvalidSettingsError,
    LearnerNotFoundError,
    NothingToScheduleError,
)
from backend.srs.fsrs import State

logger = logging.getLogger(__name__)

# Interleave cycle of 6 slots: 2 review, 3 learn, 1 practice
CYCLE_LENGTH = 6
REVIEW_SLOTS = 2
LEARN_SLOTS = 3

T = TypeVar("T")


class ItemType(Enum):
    REVIEW = "review"
    LEARN = "learn"
    PRACTICE = "practice"


@dataclass(frozen=True)
class PlanItem:
    """One activity in a session plan."""

    type: ItemType
    vocabulary_id: int
    card_id: int | None = None  # review items only
    practice: PracticeDrill | None = None  # practice items only

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "vocabulary_id": self.vocabulary_id,
            "card_id": self.card_id,
            "practice_data": self.practice.to_dict() if self.practice else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> PlanItem:
        practice = data.get("practice_data")
        return cls(
            type=ItemType(data["type"]),
            vocabulary_id=int(data["vocabulary_id"]),
            card_id=data.get("card_id"),
            practice=PracticeDrill.from_dict(practice) if practice else None,
        )


@dataclass
class SessionPlan:
    """The ordered daily queue for one learner."""

    learner_id: int
    session_date: date
    items: list[PlanItem] = field(default_factory=list)
    session_id: int | None = None

    @property
    def review_count(self) -> int:
        return sum(1 for item in self.items if item.type == ItemType.REVIEW)

    @property
    def learn_count(self) -> int:
        return sum(1 for item in self.items if item.type == ItemType.LEARN)

    @property
    def practice_count(self) -> int:
        return sum(1 for item in self.items if item.type == ItemType.PRACTICE)

    @classmethod
    def from_row(cls, row: StudySession) -> SessionPlan:
        return cls(
            learner_id=row.learner_id,
            session_date=row.session_date,
            items=[PlanItem.from_dict(item) for item in row.plan.get("items", [])],
            session_id=row.id,
        )


@dataclass(frozen=True)
class PlanSettings:
    """Per-learner knobs for plan building."""

    daily_new_words: int = settings.default_daily_new_words
    travel_weight: float = settings.default_travel_weight

    def validate(self) -> None:
        """Reject out-of-range settings instead of clamping them."""
        low, high = settings.min_daily_new_words, settings.max_daily_new_words
        if not low <= self.daily_new_words <= high:
            raise InvalidSettingsError(
                f"daily_new_words must be between {low} and {high}, got {self.daily_new_words}"
            )
        if not 0.0 <= self.travel_weight <= 1.0:
            raise InvalidSettingsError(
                f"travel_weight must be between 0 and 1, got {self.travel_weight}"
            )

    @classmethod
    def for_learner(cls, learner: Learner) -> PlanSettings:
        return cls(daily_new_words=learner.daily_new_words, travel_weight=learner.travel_weight)


def interleave(review: Sequence[T], learn: Sequence[T], practice: Sequence[T]) -> list[T]:
    """Merge the three item lists with a repeating 2-review/3-learn/1-practice cycle.

    When a slot's preferred list is exhausted the slot falls back to practice,
    then review, then learn. Leftover practice items go at the end. The result
    depends only on the three input lists.
    """
    items: list[T] = []
    ri = li = pi = 0
    counter = 0

    while ri < len(review) or li < len(learn):
        phase = counter % CYCLE_LENGTH
        if phase < REVIEW_SLOTS and ri < len(review):
            items.append(review[ri])
            ri += 1
        elif phase < REVIEW_SLOTS + LEARN_SLOTS and li < len(learn):
            items.append(learn[li])
            li += 1
        elif pi < len(practice):
            items.append(practice[pi])
            pi += 1
        elif ri < len(review):
            items.append(review[ri])
            ri += 1
        elif li < len(learn):
            items.append(learn[li])
            li += 1
        counter += 1

    items.extend(practice[pi:])
    return items


async def fetch_due_reviews(
    db: AsyncSession,
    learner_id: int,
    limit: int,
    now: datetime,
) -> list[Card]:
    """Fetch rated cards that are due, most overdue first."""
    stmt = (
        select(Card)
        .where(
            and_(
                Card.learner_id == learner_id,
                Card.state != int(State.NEW),
                Card.due <= now,
            )
        )
        .order_by(Card.due.asc(), Card.id.asc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def select_new_vocabulary(
    db: AsyncSession,
    learner_id: int,
    count: int,
    travel_weight: float,
) -> list[Vocabulary]:
    """Select vocabulary the learner has never encountered, split by category.

    Travel items come first, then software; each ordered by difficulty tier.
    """
    travel_count = _round_half_up(count * travel_weight)
    software_count = count - travel_count
    seen = select(Card.vocabulary_id).where(Card.learner_id == learner_id)

    results: list[Vocabulary] = []
    for category, limit in ((TRAVEL, travel_count), (SOFTWARE, software_count)):
        if limit <= 0:
            continue
        stmt = (
            select(Vocabulary)
            .where(
                and_(
                    Vocabulary.category == category,
                    Vocabulary.id.not_in(seen),
                )
            )
            .order_by(Vocabulary.difficulty_tier.asc(), Vocabulary.id.asc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        results.extend(result.scalars().all())
    return results


async def generate_practice(
    generator: DrillGenerator | None,
    vocabulary: Sequence[Vocabulary],
    timeout: float | None = None,
) -> list[PracticeDrill]:
    """Ask the drill generator for practice items, degrading to none on any failure."""
    if generator is None or not vocabulary:
        return []
    timeout = timeout if timeout is not None else settings.drill_timeout_seconds

    count = min(settings.max_practice_items, math.ceil(len(vocabulary) / 3))
    words = [DrillWord(v.id, v.word, v.definition) for v in vocabulary[: count * 2]]

    try:
        drills = await asyncio.wait_for(
            asyncio.to_thread(generator.generate, words, count),
            timeout=timeout,
        )
    except TimeoutError:
        logger.warning("Drill generation timed out after %.1fs, proceeding without practice", timeout)
        return []
    except (DrillGenerationError, anthropic.APIError) as exc:
        logger.warning("Drill generation failed, proceeding without practice: %s", exc)
        return []
    except Exception:
        logger.warning("Drill generator raised, proceeding without practice", exc_info=True)
        return []

    offered = {w.vocabulary_id for w in words}
    kept = [d for d in drills if d.vocabulary_id in offered]
    if len(kept) < len(drills):
        logger.warning("Dropped %d drills for vocabulary not offered", len(drills) - len(kept))
    return kept[:count]


async def compose_plan(
    db: AsyncSession,
    learner_id: int,
    plan_settings: PlanSettings,
    now: datetime,
    drill_generator: DrillGenerator | None = None,
) -> list[PlanItem]:
    """Assemble today's items without persisting anything.

    Raises:
        NothingToScheduleError: No card is due and no unseen vocabulary is left.
    """
    review_limit = math.ceil(round(plan_settings.daily_new_words * settings.review_share, 9))
    due_cards = await fetch_due_reviews(db, learner_id, review_limit, now)
    new_vocabulary = await select_new_vocabulary(
        db, learner_id, plan_settings.daily_new_words, plan_settings.travel_weight
    )
    if not due_cards and not new_vocabulary:
        raise NothingToScheduleError(learner_id)

    drills = await generate_practice(drill_generator, new_vocabulary)

    review_items = [
        PlanItem(type=ItemType.REVIEW, vocabulary_id=c.vocabulary_id, card_id=c.id)
        for c in due_cards
    ]
    learn_items = [PlanItem(type=ItemType.LEARN, vocabulary_id=v.id) for v in new_vocabulary]
    practice_items = [
        PlanItem(type=ItemType.PRACTICE, vocabulary_id=d.vocabulary_id, practice=d)
        for d in drills
    ]

    logger.info(
        "Composed plan for learner %d: %d review + %d learn + %d practice",
        learner_id,
        len(review_items),
        len(learn_items),
        len(practice_items),
    )
    return interleave(review_items, learn_items, practice_items)


async def get_plan(
    db: AsyncSession,
    learner_id: int,
    session_date: date,
) -> SessionPlan | None:
    """Return the persisted plan for a learner's day, if one exists."""
    stmt = select(StudySession).where(
        and_(
            StudySession.learner_id == learner_id,
            StudySession.session_date == session_date,
        )
    )
    row = (await db.execute(stmt)).scalar_one_or_none()
    return SessionPlan.from_row(row) if row else None


async def build_plan(
    db: AsyncSession,
    learner_id: int,
    plan_settings: PlanSettings | None = None,
    now: datetime | None = None,
    drill_generator: DrillGenerator | None = None,
) -> SessionPlan:
    """Build today's session plan for a learner, or return the one already built.

    Args:
        db: Database session.
        learner_id: The learner to plan for.
        plan_settings: Planning knobs (defaults to the learner's stored settings).
        now: Current time (defaults to utcnow).
        drill_generator: Optional generator for practice drills.

    Returns:
        The persisted SessionPlan for the learner's current calendar day.

    Raises:
        InvalidSettingsError: Settings are out of range.
        LearnerNotFoundError: The learner does not exist.
        NothingToScheduleError: Nothing is due and nothing new is available.
    """
    if plan_settings is not None:
        plan_settings.validate()
    now = now or utcnow()

    learner = await db.get(Learner, learner_id)
    if learner is None:
        raise LearnerNotFoundError(learner_id)
    if plan_settings is None:
        plan_settings = PlanSettings.for_learner(learner)
        plan_settings.validate()

    session_date = local_date(now, learner.timezone)
    existing = await get_plan(db, learner_id, session_date)
    if existing is not None:
        logger.info("Reusing plan %d for learner %d on %s", existing.session_id, learner_id, session_date)
        return existing

    items = await compose_plan(db, learner_id, plan_settings, now, drill_generator)
    row = StudySession(
        learner_id=learner_id,
        session_date=session_date,
        plan={"items": [item.to_dict() for item in items]},
        total_items=len(items),
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        # Another request persisted today's plan first; theirs wins
        await db.rollback()
        existing = await get_plan(db, learner_id, session_date)
        if existing is None:
            raise
        logger.info("Plan for learner %d on %s was built concurrently", learner_id, session_date)
        return existing

    logger.info("Built plan %d for learner %d: %d items", row.id, learner_id, len(items))
    return SessionPlan.from_row(row)


def _round_half_up(value: float) -> int:
    return math.floor(round(value, 9) + 0.5)
