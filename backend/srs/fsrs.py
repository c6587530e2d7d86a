"""FSRS (Free Spaced Repetition Scheduler) algorithm implementation.

An implementation of FSRS-5 with short-term learning steps for the vocabulary SRS.
Reference: https://github.com/open-spaced-repetition/fsrs4anki

Key concepts:
- Stability (S): The number of days after which retention drops to the target (90%).
- Difficulty (D): A value between 1 and 10 representing inherent item difficulty.
- Retrievability (R): The probability of recall at a given time since last review.
- Rating: 1=Forgot, 2=Hard, 3=Good, 4=Easy

Card states form a perpetual loop: New -> Learning -> Review <-> Relearning.
Every transition returns a new frozen CardState; nothing is mutated in place.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import IntEnum

from backend.config import settings, utcnow

# FSRS-5 default parameters
# w[0..3]: initial stability for ratings Forgot/Hard/Good/Easy on first review
# w[4..5]: initial difficulty and its slope across ratings
# w[6..7]: difficulty update step and mean reversion weight
# w[8..10]: stability increase after a successful recall
# w[11..14]: stability after a lapse
# w[15..16]: hard penalty / easy bonus
# w[17..18]: short-term (same-day) stability
DEFAULT_WEIGHTS = (
    0.40255,
    1.18385,
    3.173,
    15.69105,
    7.1949,
    0.5345,
    1.4604,
    0.0046,
    1.54575,
    0.1192,
    1.01925,
    1.9395,
    0.11,
    0.29605,
    2.2698,
    0.2315,
    2.9898,
    0.51655,
    0.6621,
)

# Target retention probability
DEFAULT_TARGET_RETENTION = 0.9

# Longest interval ever scheduled, in days
DEFAULT_MAXIMUM_INTERVAL = 365

# Short-term steps for new cards and for lapsed cards
DEFAULT_LEARNING_STEPS = (timedelta(minutes=1), timedelta(minutes=10))
DEFAULT_RELEARNING_STEPS = (timedelta(minutes=10),)

# Power forgetting curve R(t) = (1 + FACTOR * t / S) ** DECAY, so that R(S) = 0.9
DECAY = -0.5
FACTOR = 0.9 ** (1 / DECAY) - 1

# Bounds
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MIN_STABILITY = 0.01

# Interval fuzz: +/- 5%, only for intervals of at least 2.5 days
FUZZ_FACTOR = 0.05
FUZZ_MIN_INTERVAL = 2.5


class State(IntEnum):
    """Memory-model state of a card."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class Rating(IntEnum):
    """A learner's self-reported recall quality."""

    FORGOT = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass(frozen=True)
class CardState:
    """The SRS state of a card."""

    due: datetime  # When the card is next due (naive UTC)
    stability: float = 0.0  # Days until retention = target_retention
    difficulty: float = 0.0  # 1-10, inherent difficulty (0 until first rating)
    elapsed_days: int = 0  # Days since the previous review, at the last rating
    scheduled_days: int = 0  # Interval scheduled at the last rating (0 for learning steps)
    reps: int = 0  # Total reviews, any rating
    lapses: int = 0  # Times forgotten while in Review/Relearning
    state: State = State.NEW
    last_review: datetime | None = None
    step: int = 0  # Position in the learning/relearning steps

    @classmethod
    def new(cls, now: datetime | None = None) -> CardState:
        """Return an unrated card, due immediately."""
        return cls(due=now or utcnow())


@dataclass(frozen=True)
class ReviewResult:
    """The result of applying a rating to a card."""

    new_state: CardState
    previous_state: CardState
    rating: Rating
    interval_days: float
    retrievability: float  # Estimated recall probability at time of review
    reviewed_at: datetime


# Outcome of a short-term step: (state, step, delay). None means "graduate to Review".
_Route = tuple[State, int, timedelta] | None


class FSRS:
    """Free Spaced Repetition Scheduler."""

    def __init__(
        self,
        weights: tuple[float, ...] | list[float] | None = None,
        target_retention: float = DEFAULT_TARGET_RETENTION,
        maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL,
        learning_steps: tuple[timedelta, ...] = DEFAULT_LEARNING_STEPS,
        relearning_steps: tuple[timedelta, ...] = DEFAULT_RELEARNING_STEPS,
        enable_fuzz: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize FSRS.

        Args:
            weights: 19 FSRS-5 weights; defaults to DEFAULT_WEIGHTS.
            target_retention: Recall probability at which a card falls due.
            maximum_interval: Upper bound on any scheduled interval, in days.
            learning_steps: Short-term delays for new cards.
            relearning_steps: Short-term delays after a lapse.
            enable_fuzz: Randomize long intervals slightly to spread due dates.
            rng: Random source for the fuzz (a fresh ``random.Random`` if omitted).
        """
        if weights is not None and len(weights) != len(DEFAULT_WEIGHTS):
            raise ValueError(f"Expected {len(DEFAULT_WEIGHTS)} weights, got {len(weights)}")
        if not 0 < target_retention < 1:
            raise ValueError("target_retention must be between 0 and 1")
        if maximum_interval < 1:
            raise ValueError("maximum_interval must be at least 1 day")

        self.w = tuple(weights) if weights is not None else DEFAULT_WEIGHTS
        self.target_retention = target_retention
        self.maximum_interval = maximum_interval
        self.learning_steps = tuple(learning_steps)
        self.relearning_steps = tuple(relearning_steps)
        self.rng = (rng or random.Random()) if enable_fuzz else None
        self._interval_modifier = (target_retention ** (1 / DECAY) - 1) / FACTOR

    @classmethod
    def from_settings(cls, rng: random.Random | None = None) -> FSRS:
        """Build a scheduler from the application settings."""
        return cls(
            target_retention=settings.target_retention,
            maximum_interval=settings.maximum_interval_days,
            learning_steps=tuple(timedelta(minutes=m) for m in settings.learning_steps_minutes),
            relearning_steps=tuple(
                timedelta(minutes=m) for m in settings.relearning_steps_minutes
            ),
            enable_fuzz=settings.enable_fuzz,
            rng=rng,
        )

    def review(
        self,
        card: CardState,
        rating: Rating | int,
        now: datetime | None = None,
    ) -> ReviewResult:
        """Apply a rating to a card.

        Args:
            card: Current card state.
            rating: Review rating (1=Forgot, 2=Hard, 3=Good, 4=Easy).
            now: When the review happened (defaults to utcnow).

        Returns:
            ReviewResult with the new card state.
        """
        return self.preview(card, now)[Rating(rating)]

    def preview(
        self,
        card: CardState,
        now: datetime | None = None,
    ) -> dict[Rating, ReviewResult]:
        """Return what every rating would do to the card, without committing anything."""
        now = now or utcnow()
        if card.state == State.NEW:
            return self._preview_new(card, now)
        if card.state == State.REVIEW:
            return self._preview_review(card, now)
        return self._preview_learning(card, now)

    def retrievability(self, card: CardState, now: datetime | None = None) -> float:
        """Return the current probability of recalling the card."""
        if card.state == State.NEW:
            return 0.0
        return self._retrievability(self._elapsed(card, now or utcnow()), card.stability)

    # --- Transitions ---

    def _preview_new(self, card: CardState, now: datetime) -> dict[Rating, ReviewResult]:
        stabilities = {g: self._initial_stability(g) for g in Rating}
        difficulties = {g: self._initial_difficulty(g) for g in Rating}
        routes = {
            g: self._learning_route(State.LEARNING, 0, g, self.learning_steps) for g in Rating
        }
        return self._finish(card, now, 0.0, 1.0, stabilities, difficulties, routes)

    def _preview_learning(self, card: CardState, now: datetime) -> dict[Rating, ReviewResult]:
        elapsed = self._elapsed(card, now)
        r = self._retrievability(elapsed, card.stability)
        if elapsed < 1:
            stabilities = {g: self._short_term_stability(card.stability, g) for g in Rating}
        else:
            stabilities = {g: self._next_stability(card, r, g) for g in Rating}
        difficulties = {g: self._next_difficulty(card.difficulty, g) for g in Rating}
        steps = self.learning_steps if card.state == State.LEARNING else self.relearning_steps
        routes = {g: self._learning_route(card.state, card.step, g, steps) for g in Rating}
        return self._finish(card, now, elapsed, r, stabilities, difficulties, routes)

    def _preview_review(self, card: CardState, now: datetime) -> dict[Rating, ReviewResult]:
        elapsed = self._elapsed(card, now)
        r = self._retrievability(elapsed, card.stability)
        stabilities = {g: self._next_stability(card, r, g) for g in Rating}
        difficulties = {g: self._next_difficulty(card.difficulty, g) for g in Rating}
        routes: dict[Rating, _Route] = {g: None for g in Rating}
        if self.relearning_steps:
            routes[Rating.FORGOT] = (State.RELEARNING, 0, self.relearning_steps[0])
        return self._finish(card, now, elapsed, r, stabilities, difficulties, routes)

    def _learning_route(
        self,
        state: State,
        step: int,
        rating: Rating,
        steps: tuple[timedelta, ...],
    ) -> _Route:
        """Return the next short-term step for a learning card, or None to graduate."""
        if not steps or rating == Rating.EASY:
            return None
        if rating == Rating.FORGOT:
            return state, 0, steps[0]
        if rating == Rating.HARD:
            if step == 0:
                delay = steps[0] * 1.5 if len(steps) == 1 else (steps[0] + steps[1]) / 2
                return state, 0, delay
            step = min(step, len(steps) - 1)
            return state, step, steps[step]
        if step + 1 >= len(steps):
            return None
        return state, step + 1, steps[step + 1]

    def _finish(
        self,
        card: CardState,
        now: datetime,
        elapsed: float,
        retrievability: float,
        stabilities: dict[Rating, float],
        difficulties: dict[Rating, float],
        routes: dict[Rating, _Route],
    ) -> dict[Rating, ReviewResult]:
        """Turn per-rating stability/difficulty/route into ReviewResults."""
        intervals = {
            g: self._fuzz(self._next_interval(stabilities[g]))
            for g, route in routes.items()
            if route is None
        }
        # Keep Hard <= Good < Easy regardless of fuzz, then enforce the cap
        if Rating.HARD in intervals and Rating.GOOD in intervals:
            intervals[Rating.HARD] = min(intervals[Rating.HARD], intervals[Rating.GOOD])
            intervals[Rating.GOOD] = max(intervals[Rating.GOOD], intervals[Rating.HARD] + 1)
        if Rating.GOOD in intervals and Rating.EASY in intervals:
            intervals[Rating.EASY] = max(intervals[Rating.EASY], intervals[Rating.GOOD] + 1)
        intervals = {g: min(days, self.maximum_interval) for g, days in intervals.items()}

        elapsed_days = 0 if card.state == State.NEW else int(elapsed)
        lapsing = card.state in (State.REVIEW, State.RELEARNING)

        results: dict[Rating, ReviewResult] = {}
        for g in Rating:
            route = routes[g]
            if route is None:
                days = intervals[g]
                state, step, delay, scheduled = State.REVIEW, 0, timedelta(days=days), days
            else:
                state, step, delay = route
                scheduled = 0
            new_state = replace(
                card,
                due=now + delay,
                stability=stabilities[g],
                difficulty=difficulties[g],
                elapsed_days=elapsed_days,
                scheduled_days=scheduled,
                reps=card.reps + 1,
                lapses=card.lapses + 1 if lapsing and g == Rating.FORGOT else card.lapses,
                state=state,
                last_review=now,
                step=step,
            )
            results[g] = ReviewResult(
                new_state=new_state,
                previous_state=card,
                rating=g,
                interval_days=delay.total_seconds() / 86400,
                retrievability=retrievability,
                reviewed_at=now,
            )
        return results

    # --- Formulas ---

    def _elapsed(self, card: CardState, now: datetime) -> float:
        """Fractional days since the card was last rated."""
        if card.last_review is None:
            return 0.0
        return max(0.0, (now - card.last_review).total_seconds() / 86400)

    def _initial_stability(self, rating: Rating) -> float:
        return max(MIN_STABILITY, self.w[rating - 1])

    def _initial_difficulty(self, rating: Rating) -> float:
        """D0(G) = w4 - e^(w5 * (G - 1)) + 1"""
        d = self.w[4] - math.exp(self.w[5] * (rating - 1)) + 1
        return _clamp_difficulty(d)

    def _next_difficulty(self, difficulty: float, rating: Rating) -> float:
        """Update difficulty with linear damping and mean reversion toward D0(Easy)."""
        delta = -self.w[6] * (rating - 3)
        damped = difficulty + delta * (MAX_DIFFICULTY - difficulty) / 9
        reverted = self.w[7] * self._initial_difficulty(Rating.EASY) + (1 - self.w[7]) * damped
        return _clamp_difficulty(reverted)

    def _retrievability(self, elapsed_days: float, stability: float) -> float:
        """Calculate the probability of recall given elapsed time and stability.

        Uses the power forgetting curve: R = (1 + FACTOR * t / S) ^ DECAY
        """
        if elapsed_days <= 0:
            return 1.0
        return (1 + FACTOR * elapsed_days / max(stability, MIN_STABILITY)) ** DECAY

    def _next_interval(self, stability: float) -> int:
        """Convert stability to a whole-day interval for the target retention.

        Solving target_retention = (1 + FACTOR * I / S) ^ DECAY for I.
        """
        interval = min(stability * self._interval_modifier, self.maximum_interval)
        return max(1, round(interval))

    def _next_stability(self, card: CardState, retrievability: float, rating: Rating) -> float:
        if rating == Rating.FORGOT:
            return self._stability_after_fail(card.stability, card.difficulty, retrievability)
        return self._stability_after_success(
            card.stability, card.difficulty, retrievability, rating
        )

    def _stability_after_success(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
        rating: Rating,
    ) -> float:
        """Calculate new stability after a successful review (rating >= 2).

        S' = S * (1 + e^w8 * (11 - D) * S^(-w9) * (e^(w10 * (1 - R)) - 1) * penalty * bonus)
        """
        stability = max(stability, MIN_STABILITY)
        hard_penalty = self.w[15] if rating == Rating.HARD else 1.0
        easy_bonus = self.w[16] if rating == Rating.EASY else 1.0
        factor = (
            math.exp(self.w[8])
            * (11 - difficulty)
            * stability ** (-self.w[9])
            * (math.exp(self.w[10] * (1 - retrievability)) - 1)
            * hard_penalty
            * easy_bonus
        )
        return stability * (1 + factor)

    def _stability_after_fail(
        self,
        stability: float,
        difficulty: float,
        retrievability: float,
    ) -> float:
        """Calculate new stability after a lapse (rating = 1).

        S' = w11 * D^(-w12) * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))

        The result is capped at S / e^(w17 * w18), so any positive S strictly shrinks.
        """
        new_s = (
            self.w[11]
            * max(difficulty, MIN_DIFFICULTY) ** (-self.w[12])
            * ((max(stability, 0.0) + 1) ** self.w[13] - 1)
            * math.exp(self.w[14] * (1 - retrievability))
        )
        ceiling = max(stability, 0.0) / math.exp(self.w[17] * self.w[18])
        return min(new_s, ceiling)

    def _short_term_stability(self, stability: float, rating: Rating) -> float:
        """S' = S * e^(w17 * (G - 3 + w18)) for ratings within the same day."""
        new_s = max(stability, MIN_STABILITY) * math.exp(self.w[17] * (rating - 3 + self.w[18]))
        return max(MIN_STABILITY, new_s)

    def _fuzz(self, interval: int) -> int:
        """Spread an interval by up to FUZZ_FACTOR so cards don't cluster on one day."""
        if self.rng is None or interval < FUZZ_MIN_INTERVAL:
            return interval
        delta = interval * FUZZ_FACTOR
        low = max(2, round(interval - delta))
        high = min(self.maximum_interval, round(interval + delta))
        if low >= high:
            return interval
        return self.rng.randint(low, high)


def _clamp_difficulty(d: float) -> float:
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, d))


def format_next_review(due: datetime, now: datetime | None = None) -> str:
    """Format the next review date as a human-readable string."""
    now = now or utcnow()
    seconds = (due - now).total_seconds()
    minutes = round(seconds / 60)
    hours = round(seconds / 3600)
    days = round(seconds / 86400)

    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"in {_plural(minutes, 'minute')}"
    if hours < 24:
        return f"in {_plural(hours, 'hour')}"
    if days == 1:
        return "tomorrow"
    if days < 30:
        return f"in {_plural(days, 'day')}"
    if days < 365:
        return f"in {_plural(round(days / 30), 'month')}"
    return f"in {_plural(round(days / 365), 'year')}"


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"
