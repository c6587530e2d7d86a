"""Conversion between CardState and its flat persisted form.

The flat record holds primitives only (numbers, strings, ISO timestamps) and
round-trips exactly: ``decode_card(encode_card(c)) == c``. Timestamps are
naive UTC throughout the application.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from backend.models.card import Card
from backend.srs.fsrs import CardState, State

MASTERED_STABILITY_DAYS = 30.0


class MasteryLevel(Enum):
    """Coarse display label for a card. Derived, never stored."""

    NEW = "new"
    LEARNING = "learning"
    FAMILIAR = "familiar"
    MASTERED = "mastered"
    RELEARNING = "relearning"


def mastery_level(state: State | int, stability: float) -> MasteryLevel:
    """Get a human-facing mastery level from card state and stability."""
    state = State(state)
    if state == State.LEARNING:
        return MasteryLevel.LEARNING
    if state == State.RELEARNING:
        return MasteryLevel.RELEARNING
    if state == State.REVIEW:
        if stability > MASTERED_STABILITY_DAYS:
            return MasteryLevel.MASTERED
        return MasteryLevel.FAMILIAR
    return MasteryLevel.NEW


def encode_card(card: CardState) -> dict[str, Any]:
    """Convert a CardState to database-storable primitive fields."""
    return {
        "due": card.due.isoformat(),
        "stability": card.stability,
        "difficulty": card.difficulty,
        "elapsed_days": card.elapsed_days,
        "scheduled_days": card.scheduled_days,
        "reps": card.reps,
        "lapses": card.lapses,
        "state": int(card.state),
        "last_review": card.last_review.isoformat() if card.last_review else None,
        "step": card.step,
    }


def decode_card(record: Mapping[str, Any]) -> CardState:
    """Convert stored primitive fields back to a CardState.

    Raises:
        KeyError: A required field is missing.
        ValueError: A field holds an unparseable timestamp or an unknown state.
    """
    last_review = record.get("last_review")
    return CardState(
        due=_parse_timestamp(record["due"]),
        stability=float(record["stability"]),
        difficulty=float(record["difficulty"]),
        elapsed_days=int(record["elapsed_days"]),
        scheduled_days=int(record["scheduled_days"]),
        reps=int(record["reps"]),
        lapses=int(record["lapses"]),
        state=State(int(record["state"])),
        last_review=_parse_timestamp(last_review) if last_review else None,
        step=int(record.get("step", 0)),
    )


def card_state_from_row(card: Card) -> CardState:
    """Extract FSRS state from a database Card."""
    return CardState(
        due=card.due,
        stability=card.stability,
        difficulty=card.difficulty,
        elapsed_days=card.elapsed_days,
        scheduled_days=card.scheduled_days,
        reps=card.reps,
        lapses=card.lapses,
        state=State(card.state),
        last_review=card.last_review,
        step=card.step,
    )


def apply_card_state(card: Card, state: CardState) -> None:
    """Write a CardState onto a database Card."""
    card.due = state.due
    card.stability = state.stability
    card.difficulty = state.difficulty
    card.elapsed_days = state.elapsed_days
    card.scheduled_days = state.scheduled_days
    card.reps = state.reps
    card.lapses = state.lapses
    card.state = int(state.state)
    card.last_review = state.last_review
    card.step = state.step


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed
