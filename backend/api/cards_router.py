"""API routes for inspecting a learner's cards."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import CardPreviewResponse, CardResponse, RatingPreview
from backend.api.session_router import get_fsrs
from backend.config import utcnow
from backend.database import get_session
from backend.models.vocabulary import Vocabulary
from backend.srs.codec import card_state_from_row, mastery_level
from backend.srs.errors import NotFoundError
from backend.srs.fsrs import FSRS, format_next_review
from backend.srs.session import get_card, preview_card

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cards", tags=["cards"])


@router.get("/{card_id}", response_model=CardResponse)
async def card_detail(
    card_id: int,
    learner_id: int,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> CardResponse:
    """Get a card's memory state and current recall probability."""
    try:
        card = await get_card(db, learner_id, card_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    vocabulary = await db.get(Vocabulary, card.vocabulary_id)
    state = card_state_from_row(card)
    return CardResponse(
        card_id=card.id,
        vocabulary_id=card.vocabulary_id,
        word=vocabulary.word if vocabulary else "",
        state=state.state.name.lower(),
        mastery_level=mastery_level(state.state, state.stability).value,
        due=state.due,
        stability=state.stability,
        difficulty=state.difficulty,
        reps=state.reps,
        lapses=state.lapses,
        last_review=state.last_review,
        retrievability=round(fsrs.retrievability(state, utcnow()), 4),
    )


@router.get("/{card_id}/preview", response_model=CardPreviewResponse)
async def card_preview(
    card_id: int,
    learner_id: int,
    db: AsyncSession = Depends(get_session),
    fsrs: FSRS = Depends(get_fsrs),
) -> CardPreviewResponse:
    """Show the outcome of each rating for a card without applying any."""
    now = utcnow()
    try:
        outcomes = await preview_card(db, learner_id, card_id, fsrs, now)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    return CardPreviewResponse(
        card_id=card_id,
        outcomes=[
            RatingPreview(
                rating=int(rating),
                label=rating.name.lower(),
                state=result.new_state.state.name.lower(),
                next_due=result.new_state.due,
                next_review=format_next_review(result.new_state.due, now),
                interval_days=result.interval_days,
            )
            for rating, result in sorted(outcomes.items())
        ],
    )
