"""Review session runtime.

Steps through a day's session plan, applying each rating through FSRS,
persisting the updated card and appending to the review log. The plan itself
is never rewritten; only the session's cursor and counters move.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import utcnow
from backend.models.card import Card
from backend.models.review_log import ReviewLog
from backend.models.study_session import StudySession
from backend.models.vocabulary import Vocabulary
from backend.srs.codec import apply_card_state, card_state_from_row, encode_card
from backend.srs.drills import DrillGenerator, check_drill_answer
from backend.srs.errors import (
    CardNotFoundError,
    SessionCompleteError,
    SessionNotFoundError,
    VocabularyNotFoundError,
    WrongItemTypeError,
)
from backend.srs.fsrs import FSRS, CardState, Rating, ReviewResult
from backend.srs.planner import ItemType, PlanItem, SessionPlan, build_plan

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    """Progress counters for a study session."""

    completed_items: int = 0
    total_items: int = 0
    new_words_learned: int = 0
    words_reviewed: int = 0
    practice_correct: int = 0
    duration_ms: int = 0


async def get_card(db: AsyncSession, learner_id: int, card_id: int) -> Card:
    """Load a learner's card, raising CardNotFoundError if it isn't theirs."""
    card = await db.get(Card, card_id)
    if card is None or card.learner_id != learner_id:
        raise CardNotFoundError(card_id)
    return card


def _apply_rating(
    db: AsyncSession,
    card: Card,
    state: CardState,
    rating: Rating | int,
    fsrs: FSRS,
    now: datetime,
    session_id: int | None,
    duration_ms: int,
) -> ReviewResult:
    """Run FSRS on a card, write the new state and append a review log row."""
    result = fsrs.review(state, rating, now)
    apply_card_state(card, result.new_state)

    before, after = result.previous_state, result.new_state
    db.add(
        ReviewLog(
            card_id=card.id,
            learner_id=card.learner_id,
            vocabulary_id=card.vocabulary_id,
            session_id=session_id,
            rating=int(result.rating),
            state_before=int(before.state),
            state_after=int(after.state),
            stability_before=before.stability,
            stability_after=after.stability,
            difficulty_before=before.difficulty,
            difficulty_after=after.difficulty,
            elapsed_days=after.elapsed_days,
            scheduled_days=after.scheduled_days,
            duration_ms=duration_ms,
            snapshot_before=encode_card(before),
            snapshot_after=encode_card(after),
            reviewed_at=result.reviewed_at,
        )
    )
    logger.debug(
        "Card %d rated %s: %s -> %s, due %s",
        card.id,
        result.rating.name,
        before.state.name,
        after.state.name,
        after.due.isoformat(),
    )
    return result


async def _rate_existing(
    db: AsyncSession,
    learner_id: int,
    card_id: int,
    rating: Rating | int,
    fsrs: FSRS,
    now: datetime,
    session_id: int | None,
    duration_ms: int,
) -> tuple[Card, ReviewResult]:
    card = await get_card(db, learner_id, card_id)
    result = _apply_rating(
        db, card, card_state_from_row(card), rating, fsrs, now, session_id, duration_ms
    )
    return card, result


async def _rate_vocabulary(
    db: AsyncSession,
    learner_id: int,
    vocabulary_id: int,
    rating: Rating | int,
    fsrs: FSRS,
    now: datetime,
    session_id: int | None,
    duration_ms: int,
) -> tuple[Card, ReviewResult]:
    stmt = select(Card).where(
        and_(Card.learner_id == learner_id, Card.vocabulary_id == vocabulary_id)
    )
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        # Already encountered: this is an ordinary review
        result = _apply_rating(
            db, existing, card_state_from_row(existing), rating, fsrs, now, session_id, duration_ms
        )
        return existing, result

    if await db.get(Vocabulary, vocabulary_id) is None:
        raise VocabularyNotFoundError(vocabulary_id)

    card = Card(learner_id=learner_id, vocabulary_id=vocabulary_id)
    db.add(card)
    await db.flush()  # assigns card.id for the review log
    result = _apply_rating(
        db, card, CardState.new(now), rating, fsrs, now, session_id, duration_ms
    )
    return card, result


async def review_card(
    db: AsyncSession,
    learner_id: int,
    card_id: int,
    rating: Rating | int,
    fsrs: FSRS,
    now: datetime | None = None,
    session_id: int | None = None,
    duration_ms: int = 0,
) -> tuple[Card, ReviewResult]:
    """Submit a rating for an existing card.

    Raises:
        CardNotFoundError: The card doesn't exist or belongs to another learner.
    """
    card, result = await _rate_existing(
        db, learner_id, card_id, rating, fsrs, now or utcnow(), session_id, duration_ms
    )
    await db.commit()
    return card, result


async def learn_vocabulary(
    db: AsyncSession,
    learner_id: int,
    vocabulary_id: int,
    rating: Rating | int,
    fsrs: FSRS,
    now: datetime | None = None,
    session_id: int | None = None,
    duration_ms: int = 0,
) -> tuple[Card, ReviewResult]:
    """Rate a vocabulary item, creating the learner's card on first encounter.

    Raises:
        VocabularyNotFoundError: The vocabulary item doesn't exist.
    """
    card, result = await _rate_vocabulary(
        db, learner_id, vocabulary_id, rating, fsrs, now or utcnow(), session_id, duration_ms
    )
    await db.commit()
    return card, result


async def preview_card(
    db: AsyncSession,
    learner_id: int,
    card_id: int,
    fsrs: FSRS,
    now: datetime | None = None,
) -> dict[Rating, ReviewResult]:
    """Show what each rating would do to a card, without saving anything."""
    card = await get_card(db, learner_id, card_id)
    return fsrs.preview(card_state_from_row(card), now)


@dataclass
class ReviewSession:
    """An active study session for a learner, backed by its persisted row."""

    row: StudySession
    plan: SessionPlan
    fsrs: FSRS

    @property
    def session_id(self) -> int:
        return self.row.id

    @property
    def learner_id(self) -> int:
        return self.row.learner_id

    @property
    def remaining(self) -> int:
        """Return the number of items left in the plan."""
        return max(0, len(self.plan.items) - self.row.current_index)

    @property
    def is_complete(self) -> bool:
        """Return True if every item has been handled."""
        return self.row.current_index >= len(self.plan.items)

    @property
    def current_item(self) -> PlanItem | None:
        """Return the current item or None if the session is complete."""
        if self.is_complete:
            return None
        return self.plan.items[self.row.current_index]

    @property
    def stats(self) -> SessionStats:
        return SessionStats(
            completed_items=min(self.row.current_index, len(self.plan.items)),
            total_items=len(self.plan.items),
            new_words_learned=self.row.new_words_learned,
            words_reviewed=self.row.words_reviewed,
            practice_correct=self.row.practice_correct,
            duration_ms=self.row.duration_ms,
        )

    async def rate(
        self,
        db: AsyncSession,
        rating: Rating | int,
        duration_ms: int = 0,
        now: datetime | None = None,
    ) -> tuple[Card, ReviewResult]:
        """Rate the current review or learn item and advance.

        Raises:
            SessionCompleteError: No items are left.
            WrongItemTypeError: The current item is a practice drill.
        """
        item = self._require_current(ItemType.REVIEW, ItemType.LEARN)
        now = now or utcnow()

        if item.type == ItemType.REVIEW:
            card, result = await _rate_existing(
                db, self.learner_id, item.card_id, rating, self.fsrs, now, self.session_id, duration_ms
            )
            self.row.words_reviewed += 1
        else:
            card, result = await _rate_vocabulary(
                db, self.learner_id, item.vocabulary_id, rating, self.fsrs, now, self.session_id, duration_ms
            )
            self.row.new_words_learned += 1

        self._advance(duration_ms, now)
        await db.commit()
        return card, result

    async def answer_practice(
        self,
        db: AsyncSession,
        response: str,
        duration_ms: int = 0,
        now: datetime | None = None,
    ) -> bool:
        """Check the answer to the current practice drill and advance.

        Practice answers never change card state.
        """
        item = self._require_current(ItemType.PRACTICE)
        correct = item.practice is not None and check_drill_answer(item.practice, response)
        if correct:
            self.row.practice_correct += 1
        self._advance(duration_ms, now or utcnow())
        await db.commit()
        return correct

    def _require_current(self, *types: ItemType) -> PlanItem:
        item = self.current_item
        if item is None:
            raise SessionCompleteError(f"Session {self.session_id} is complete")
        if item.type not in types:
            raise WrongItemTypeError(
                f"Current item is a {item.type.value} item, expected {'/'.join(t.value for t in types)}"
            )
        return item

    def _advance(self, duration_ms: int, now: datetime) -> None:
        self.row.current_index += 1
        self.row.duration_ms += duration_ms
        if self.is_complete:
            self.row.status = "completed"
            self.row.completed_at = now
            logger.info(
                "Session %d complete: %d learned, %d reviewed",
                self.session_id,
                self.row.new_words_learned,
                self.row.words_reviewed,
            )


async def start_session(
    db: AsyncSession,
    learner_id: int,
    now: datetime | None = None,
    drill_generator: DrillGenerator | None = None,
    fsrs: FSRS | None = None,
) -> ReviewSession:
    """Start (or resume) today's session for a learner.

    Raises:
        LearnerNotFoundError: The learner does not exist.
        NothingToScheduleError: Nothing is due and nothing new is available.
    """
    plan = await build_plan(db, learner_id, now=now, drill_generator=drill_generator)
    row = await db.get(StudySession, plan.session_id)
    session = ReviewSession(row=row, plan=plan, fsrs=fsrs or FSRS.from_settings())
    logger.info(
        "Started session %d for learner %d: %d items, %d remaining",
        session.session_id,
        learner_id,
        len(plan.items),
        session.remaining,
    )
    return session


async def load_session(
    db: AsyncSession,
    session_id: int,
    fsrs: FSRS | None = None,
) -> ReviewSession:
    """Load an existing session by id.

    Raises:
        SessionNotFoundError: No such session.
    """
    row = await db.get(StudySession, session_id)
    if row is None:
        raise SessionNotFoundError(session_id)
    return ReviewSession(row=row, plan=SessionPlan.from_row(row), fsrs=fsrs or FSRS.from_settings())
