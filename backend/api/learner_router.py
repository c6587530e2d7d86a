"""API routes for learners and their planning settings."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import LearnerCreateRequest, LearnerResponse, LearnerSettingsRequest
from backend.database import get_session
from backend.models.learner import Learner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/learners", tags=["learners"])


def _learner_response(learner: Learner) -> LearnerResponse:
    return LearnerResponse(
        id=learner.id,
        name=learner.name,
        email=learner.email,
        daily_new_words=learner.daily_new_words,
        travel_weight=learner.travel_weight,
        timezone=learner.timezone,
    )


async def _get_learner(db: AsyncSession, learner_id: int) -> Learner:
    learner = await db.get(Learner, learner_id)
    if learner is None:
        raise HTTPException(status_code=404, detail=f"Learner {learner_id} not found")
    return learner


@router.post("", response_model=LearnerResponse, status_code=201)
async def create_learner(
    request: LearnerCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> LearnerResponse:
    """Register a new learner."""
    learner = Learner(**request.model_dump())
    db.add(learner)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered") from exc

    logger.info("Created learner %d", learner.id)
    return _learner_response(learner)


@router.get("/{learner_id}", response_model=LearnerResponse)
async def get_learner(
    learner_id: int,
    db: AsyncSession = Depends(get_session),
) -> LearnerResponse:
    return _learner_response(await _get_learner(db, learner_id))


@router.patch("/{learner_id}/settings", response_model=LearnerResponse)
async def update_settings(
    learner_id: int,
    request: LearnerSettingsRequest,
    db: AsyncSession = Depends(get_session),
) -> LearnerResponse:
    """Update planning settings. Takes effect from the next day's plan."""
    learner = await _get_learner(db, learner_id)
    for field, value in request.model_dump(exclude_none=True).items():
        setattr(learner, field, value)
    await db.commit()
    return _learner_response(learner)
