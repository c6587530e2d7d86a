"""Tests for the session runtime: rating, logging and cursor handling."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from backend.models import Card, Learner, ReviewLog, StudySession
from backend.srs.codec import decode_card
from backend.srs.drills import DrillWord, PracticeDrill
from backend.srs.errors import (
    CardNotFoundError,
    NotFoundError,
    SessionCompleteError,
    SessionNotFoundError,
    VocabularyNotFoundError,
    WrongItemTypeError,
)
from backend.srs.fsrs import FSRS, Rating, State
from backend.srs.planner import ItemType
from backend.srs.session import (
    learn_vocabulary,
    load_session,
    preview_card,
    review_card,
    start_session,
)

NOW = datetime(2025, 3, 10, 9, 0, 0)


class EchoDrillGenerator:
    def generate(self, words: list[DrillWord], count: int) -> list[PracticeDrill]:
        return [
            PracticeDrill(
                sentence="Where is the ____?",
                answer=w.word,
                options=[w.word, "x", "y", "z"],
                vocabulary_id=w.vocabulary_id,
                word=w.word,
            )
            for w in words
        ]


@pytest.fixture
def fsrs() -> FSRS:
    return FSRS(enable_fuzz=False)


async def count(db, model) -> int:
    return (await db.execute(select(func.count(model.id)))).scalar() or 0


class TestReviewSession:
    @pytest.mark.asyncio
    async def test_rate_learn_items_creates_cards(self, db, learner, catalog, fsrs) -> None:
        session = await start_session(db, learner.id, now=NOW, fsrs=fsrs)
        assert session.remaining == 10
        item = session.current_item
        assert item.type == ItemType.LEARN

        card, result = await session.rate(db, Rating.GOOD, duration_ms=1200, now=NOW)
        assert card.vocabulary_id == item.vocabulary_id
        assert card.state == int(State.LEARNING)
        assert result.new_state.due == NOW + timedelta(minutes=10)
        assert session.remaining == 9
        assert session.row.current_index == 1
        assert session.row.new_words_learned == 1
        assert session.row.duration_ms == 1200
        assert await count(db, Card) == 1
        assert await count(db, ReviewLog) == 1

    @pytest.mark.asyncio
    async def test_completing_the_plan(self, db, learner, catalog, fsrs) -> None:
        session = await start_session(db, learner.id, now=NOW, fsrs=fsrs)
        while not session.is_complete:
            await session.rate(db, Rating.EASY, now=NOW)

        row = await db.get(StudySession, session.session_id)
        assert row.status == "completed"
        assert row.completed_at == NOW
        assert session.current_item is None
        assert session.stats.completed_items == session.stats.total_items == 10

        with pytest.raises(SessionCompleteError):
            await session.rate(db, Rating.GOOD, now=NOW)

    @pytest.mark.asyncio
    async def test_practice_items(self, db, learner, catalog, fsrs) -> None:
        session = await start_session(
            db, learner.id, now=NOW, drill_generator=EchoDrillGenerator(), fsrs=fsrs
        )
        for _ in range(5):
            await session.rate(db, Rating.GOOD, now=NOW)

        item = session.current_item
        assert item.type == ItemType.PRACTICE
        with pytest.raises(WrongItemTypeError):
            await session.rate(db, Rating.GOOD, now=NOW)

        correct = await session.answer_practice(db, f"  {item.practice.answer.upper()}. ", now=NOW)
        assert correct is True
        assert session.row.practice_correct == 1
        # Practice never touches cards
        assert await count(db, Card) == 5
        assert await count(db, ReviewLog) == 5

        with pytest.raises(WrongItemTypeError):
            await session.answer_practice(db, "anything", now=NOW)

    @pytest.mark.asyncio
    async def test_wrong_practice_answer_still_advances(self, db, learner, catalog, fsrs) -> None:
        session = await start_session(
            db, learner.id, now=NOW, drill_generator=EchoDrillGenerator(), fsrs=fsrs
        )
        for _ in range(5):
            await session.rate(db, Rating.GOOD, now=NOW)
        assert await session.answer_practice(db, "definitely wrong", now=NOW) is False
        assert session.row.current_index == 6
        assert session.row.practice_correct == 0

    @pytest.mark.asyncio
    async def test_review_item_lapse(self, db, learner, catalog, fsrs) -> None:
        card = Card(
            learner_id=learner.id,
            vocabulary_id=catalog[0].id,
            due=NOW - timedelta(days=1),
            stability=12.0,
            difficulty=5.0,
            reps=4,
            lapses=0,
            state=int(State.REVIEW),
            last_review=NOW - timedelta(days=13),
        )
        db.add(card)
        await db.commit()

        session = await start_session(db, learner.id, now=NOW, fsrs=fsrs)
        assert session.current_item.card_id == card.id
        _, result = await session.rate(db, Rating.FORGOT, now=NOW)

        row = await db.get(Card, card.id)
        assert row.state == int(State.RELEARNING)
        assert row.lapses == 1
        assert row.stability < 12.0
        assert session.row.words_reviewed == 1
        assert result.previous_state.state == State.REVIEW

    @pytest.mark.asyncio
    async def test_load_session_resumes(self, db, session_factory, learner, catalog, fsrs) -> None:
        session = await start_session(db, learner.id, now=NOW, fsrs=fsrs)
        await session.rate(db, Rating.GOOD, now=NOW)
        await session.rate(db, Rating.HARD, now=NOW)

        async with session_factory() as other:
            resumed = await load_session(other, session.session_id, fsrs)
            assert resumed.row.current_index == 2
            assert resumed.current_item == session.current_item
            assert resumed.plan.items == session.plan.items

    @pytest.mark.asyncio
    async def test_start_session_twice_resumes(self, db, learner, catalog, fsrs) -> None:
        first = await start_session(db, learner.id, now=NOW, fsrs=fsrs)
        await first.rate(db, Rating.GOOD, now=NOW)
        second = await start_session(db, learner.id, now=NOW + timedelta(hours=1), fsrs=fsrs)
        assert second.session_id == first.session_id
        assert second.remaining == 9

    @pytest.mark.asyncio
    async def test_unknown_session(self, db) -> None:
        with pytest.raises(SessionNotFoundError):
            await load_session(db, 12345)


class TestCardOperations:
    @pytest.mark.asyncio
    async def test_learn_then_review(self, db, learner, catalog, fsrs) -> None:
        card, first = await learn_vocabulary(db, learner.id, catalog[0].id, Rating.GOOD, fsrs, NOW)
        assert first.previous_state.state == State.NEW

        later = NOW + timedelta(minutes=10)
        _, second = await review_card(db, learner.id, card.id, Rating.GOOD, fsrs, later)
        assert second.new_state.state == State.REVIEW
        assert second.new_state.reps == 2

        logs = (await db.execute(select(ReviewLog).order_by(ReviewLog.id))).scalars().all()
        assert [log.rating for log in logs] == [3, 3]
        assert decode_card(logs[1].snapshot_before) == first.new_state
        assert decode_card(logs[1].snapshot_after) == second.new_state
        assert logs[1].state_before == int(State.LEARNING)
        assert logs[1].state_after == int(State.REVIEW)

    @pytest.mark.asyncio
    async def test_learning_a_seen_word_reviews_it(self, db, learner, catalog, fsrs) -> None:
        card, _ = await learn_vocabulary(db, learner.id, catalog[0].id, Rating.GOOD, fsrs, NOW)
        again, result = await learn_vocabulary(
            db, learner.id, catalog[0].id, Rating.GOOD, fsrs, NOW + timedelta(minutes=10)
        )
        assert again.id == card.id
        assert result.new_state.reps == 2
        assert await count(db, Card) == 1

    @pytest.mark.asyncio
    async def test_unknown_vocabulary(self, db, learner, fsrs) -> None:
        with pytest.raises(VocabularyNotFoundError):
            await learn_vocabulary(db, learner.id, 999, Rating.GOOD, fsrs, NOW)

    @pytest.mark.asyncio
    async def test_card_ownership(self, db, learner, catalog, fsrs) -> None:
        card, _ = await learn_vocabulary(db, learner.id, catalog[0].id, Rating.GOOD, fsrs, NOW)
        stranger = Learner(name="Someone Else")
        db.add(stranger)
        await db.commit()

        with pytest.raises(CardNotFoundError):
            await review_card(db, stranger.id, card.id, Rating.GOOD, fsrs, NOW)
        with pytest.raises(NotFoundError):
            await preview_card(db, stranger.id, card.id, fsrs, NOW)

    @pytest.mark.asyncio
    async def test_preview_does_not_persist(self, db, learner, catalog, fsrs) -> None:
        card, _ = await learn_vocabulary(db, learner.id, catalog[0].id, Rating.GOOD, fsrs, NOW)
        due_before = card.due
        outcomes = await preview_card(db, learner.id, card.id, fsrs, NOW + timedelta(minutes=10))
        assert set(outcomes) == set(Rating)
        assert outcomes[Rating.EASY].new_state.state == State.REVIEW

        row = await db.get(Card, card.id)
        assert row.due == due_before
        assert row.reps == 1
        assert await count(db, ReviewLog) == 1
