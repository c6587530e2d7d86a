"""API routes for daily study sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    NextItemResponse,
    PlanItemResponse,
    PracticeDrillResponse,
    PracticeRequest,
    PracticeResponse,
    RateRequest,
    RateResponse,
    SessionResponse,
)
from backend.database import get_session
from backend.models.vocabulary import Vocabulary
from backend.srs.drills import DrillGenerator, default_drill_generator
from backend.srs.errors import (
    InvalidSettingsError,
    NotFoundError,
    NothingToScheduleError,
    SessionCompleteError,
    WrongItemTypeError,
)
from backend.srs.fsrs import FSRS, format_next_review
from backend.srs.planner import PlanItem
from backend.srs.session import ReviewSession, load_session, start_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


def get_fsrs() -> FSRS:
    """Scheduler built from the current settings."""
    return FSRS.from_settings()


def get_drill_generator() -> DrillGenerator | None:
    return default_drill_generator()


def _item_response(item: PlanItem) -> PlanItemResponse:
    practice = None
    if item.practice is not None:
        practice = PracticeDrillResponse(
            sentence=item.practice.sentence,
            options=item.practice.options,
            word=item.practice.word,
        )
    return PlanItemResponse(
        type=item.type.value,
        vocabulary_id=item.vocabulary_id,
        card_id=item.card_id,
        practice=practice,
    )


def _session_response(review_session: ReviewSession) -> SessionResponse:
    row, plan = review_session.row, review_session.plan
    return SessionResponse(
        session_id=row.id,
        learner_id=row.learner_id,
        session_date=row.session_date,
        status=row.status,
        current_index=row.current_index,
        total_items=len(plan.items),
        remaining=review_session.remaining,
        review_count=plan.review_count,
        learn_count=plan.learn_count,
        practice_count=plan.practice_count,
        new_words_learned=row.new_words_learned,
        words_reviewed=row.words_reviewed,
        practice_correct=row.practice_correct,
        items=[_item_response(item) for item in plan.items],
    )


async def _load(db: AsyncSession, session_id: int, fsrs: FSRS) -> ReviewSession:
    try:
        return await load_session(db, session_id, fsrs)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/start/{learner_id}", response_model=SessionResponse)
async def session_start(
    learner_id: int,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
    drill_generator: DrillGenerator | None = Depends(get_drill_generator),
) -> SessionResponse:
    """Build today's plan for a learner, or return the one already built."""
    try:
        review_session = await start_session(
            db, learner_id, drill_generator=drill_generator, fsrs=fsrs
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NothingToScheduleError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidSettingsError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return _session_response(review_session)


@router.get("/{session_id}", response_model=SessionResponse)
async def session_get(
    session_id: int,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> SessionResponse:
    """Get a session's plan and progress."""
    return _session_response(await _load(db, session_id, fsrs))


@router.get("/{session_id}/next", response_model=NextItemResponse)
async def session_next(
    session_id: int,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> NextItemResponse:
    """Get the current item in the session."""
    review_session = await _load(db, session_id, fsrs)
    item = review_session.current_item
    if item is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    vocabulary = await db.get(Vocabulary, item.vocabulary_id)
    if vocabulary is None:
        raise HTTPException(status_code=404, detail=f"Vocabulary {item.vocabulary_id} not found")

    return NextItemResponse(
        index=review_session.row.current_index,
        remaining=review_session.remaining,
        item=_item_response(item),
        word=vocabulary.word,
        definition=vocabulary.definition,
        definition_zh=vocabulary.definition_zh,
        pronunciation=vocabulary.pronunciation,
        example_sentences=vocabulary.example_sentences,
    )


@router.post("/{session_id}/rate", response_model=RateResponse)
async def session_rate(
    session_id: int,
    request: RateRequest,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> RateResponse:
    """Rate the current review or learn item."""
    review_session = await _load(db, session_id, fsrs)
    try:
        card, result = await review_session.rate(db, request.rating, request.duration_ms)
    except SessionCompleteError as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except WrongItemTypeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    new_state = result.new_state
    return RateResponse(
        card_id=card.id,
        state=new_state.state.name.lower(),
        next_due=new_state.due,
        next_review=format_next_review(new_state.due, result.reviewed_at),
        interval_days=result.interval_days,
        retrievability=round(result.retrievability, 4),
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
    )


@router.post("/{session_id}/practice", response_model=PracticeResponse)
async def session_practice(
    session_id: int,
    request: PracticeRequest,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> PracticeResponse:
    """Answer the current practice drill."""
    review_session = await _load(db, session_id, fsrs)
    item = review_session.current_item
    try:
        correct = await review_session.answer_practice(db, request.response, request.duration_ms)
    except SessionCompleteError as exc:
        raise HTTPException(status_code=410, detail=str(exc)) from exc
    except WrongItemTypeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return PracticeResponse(
        correct=correct,
        correct_answer=item.practice.answer if item and item.practice else "",
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
    )
