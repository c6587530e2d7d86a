"""Tests for the FSRS memory model."""

import random
from datetime import datetime, timedelta

import pytest

from backend.srs.fsrs import (
    DEFAULT_WEIGHTS,
    FSRS,
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    CardState,
    Rating,
    State,
    format_next_review,
)

NOW = datetime(2025, 3, 10, 9, 0, 0)


def review_card(stability: float = 10.0, difficulty: float = 5.0, days_ago: float = 10.0) -> CardState:
    return CardState(
        due=NOW,
        stability=stability,
        difficulty=difficulty,
        elapsed_days=0,
        scheduled_days=10,
        reps=5,
        lapses=1,
        state=State.REVIEW,
        last_review=NOW - timedelta(days=days_ago),
    )


class TestNewCards:
    def setup_method(self) -> None:
        self.fsrs = FSRS(enable_fuzz=False)
        self.card = CardState.new(NOW)

    @pytest.mark.parametrize("rating", list(Rating))
    def test_due_in_future_and_state_advances(self, rating: Rating) -> None:
        result = self.fsrs.review(self.card, rating, NOW)
        assert result.new_state.due > NOW
        assert result.new_state.state in (State.LEARNING, State.REVIEW)
        assert result.new_state.reps == 1
        assert result.new_state.lapses == 0
        assert result.new_state.last_review == NOW

    def test_learning_step_delays(self) -> None:
        outcomes = self.fsrs.preview(self.card, NOW)
        assert outcomes[Rating.FORGOT].new_state.due == NOW + timedelta(minutes=1)
        assert outcomes[Rating.HARD].new_state.due == NOW + timedelta(minutes=5.5)
        assert outcomes[Rating.GOOD].new_state.due == NOW + timedelta(minutes=10)
        assert outcomes[Rating.GOOD].new_state.step == 1
        for rating in (Rating.FORGOT, Rating.HARD, Rating.GOOD):
            assert outcomes[rating].new_state.state == State.LEARNING
            assert outcomes[rating].new_state.scheduled_days == 0

    def test_easy_fast_tracks_to_review(self) -> None:
        result = self.fsrs.review(self.card, Rating.EASY, NOW)
        assert result.new_state.state == State.REVIEW
        # At 90% target retention the interval equals the stability
        assert result.new_state.scheduled_days == round(DEFAULT_WEIGHTS[3])
        assert result.new_state.due == NOW + timedelta(days=round(DEFAULT_WEIGHTS[3]))

    def test_initial_stability_and_difficulty_follow_rating(self) -> None:
        outcomes = self.fsrs.preview(self.card, NOW)
        stabilities = [outcomes[g].new_state.stability for g in Rating]
        difficulties = [outcomes[g].new_state.difficulty for g in Rating]
        assert stabilities == sorted(stabilities)
        assert difficulties == sorted(difficulties, reverse=True)
        assert all(MIN_DIFFICULTY <= d <= MAX_DIFFICULTY for d in difficulties)

    def test_elapsed_days_zero_for_first_rating(self) -> None:
        result = self.fsrs.review(self.card, Rating.GOOD, NOW + timedelta(days=3))
        assert result.new_state.elapsed_days == 0


class TestLearningCards:
    def setup_method(self) -> None:
        self.fsrs = FSRS(enable_fuzz=False)
        first = self.fsrs.review(CardState.new(NOW), Rating.GOOD, NOW).new_state
        self.card = first  # Learning, step 1, due in 10 minutes
        self.later = NOW + timedelta(minutes=10)

    def test_good_on_last_step_graduates(self) -> None:
        result = self.fsrs.review(self.card, Rating.GOOD, self.later)
        assert result.new_state.state == State.REVIEW
        assert result.new_state.step == 0
        assert result.new_state.due >= self.later + timedelta(days=1)

    def test_hard_repeats_current_step(self) -> None:
        result = self.fsrs.review(self.card, Rating.HARD, self.later)
        assert result.new_state.state == State.LEARNING
        assert result.new_state.step == 1
        assert result.new_state.due == self.later + timedelta(minutes=10)

    def test_forgot_restarts_steps_without_lapse(self) -> None:
        result = self.fsrs.review(self.card, Rating.FORGOT, self.later)
        assert result.new_state.state == State.LEARNING
        assert result.new_state.step == 0
        assert result.new_state.due == self.later + timedelta(minutes=1)
        assert result.new_state.lapses == 0

    def test_same_day_ratings_use_short_term_stability(self) -> None:
        forgot = self.fsrs.review(self.card, Rating.FORGOT, self.later).new_state
        easy = self.fsrs.review(self.card, Rating.EASY, self.later).new_state
        assert forgot.stability < self.card.stability < easy.stability

    def test_relearning_good_graduates_back_to_review(self) -> None:
        lapsed = self.fsrs.review(review_card(), Rating.FORGOT, NOW).new_state
        assert lapsed.state == State.RELEARNING
        result = self.fsrs.review(lapsed, Rating.GOOD, NOW + timedelta(minutes=10))
        assert result.new_state.state == State.REVIEW
        assert result.new_state.lapses == lapsed.lapses

    def test_forgot_in_relearning_counts_a_lapse(self) -> None:
        lapsed = self.fsrs.review(review_card(), Rating.FORGOT, NOW).new_state
        again = self.fsrs.review(lapsed, Rating.FORGOT, NOW + timedelta(minutes=10)).new_state
        assert again.state == State.RELEARNING
        assert again.lapses == lapsed.lapses + 1


class TestReviewCards:
    def setup_method(self) -> None:
        self.fsrs = FSRS(enable_fuzz=False)

    @pytest.mark.parametrize("stability", [0.001, 0.005, 0.01, 0.5, 3.0, 10.0, 120.0, 5000.0])
    @pytest.mark.parametrize("days_ago", [0.0, 1.0, 10.0, 400.0])
    def test_forgot_lapses(self, stability: float, days_ago: float) -> None:
        card = review_card(stability=stability, days_ago=days_ago)
        result = self.fsrs.review(card, Rating.FORGOT, NOW)
        assert result.new_state.state == State.RELEARNING
        assert result.new_state.step == 0
        assert result.new_state.lapses == card.lapses + 1
        assert 0 < result.new_state.stability < card.stability
        assert result.new_state.due == NOW + timedelta(minutes=10)

    @pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
    @pytest.mark.parametrize("days_ago", [0.0, 0.5, 3.0, 10.0, 60.0])
    def test_success_never_decreases_stability(self, rating: Rating, days_ago: float) -> None:
        card = review_card(days_ago=days_ago)
        result = self.fsrs.review(card, rating, NOW)
        assert result.new_state.stability >= card.stability
        assert result.new_state.state == State.REVIEW

    @pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
    def test_spacing_effect(self, rating: Rating) -> None:
        early = self.fsrs.review(review_card(days_ago=5), rating, NOW).new_state
        late = self.fsrs.review(review_card(days_ago=20), rating, NOW).new_state
        assert late.stability > early.stability

    def test_elapsed_days_recorded(self) -> None:
        result = self.fsrs.review(review_card(days_ago=7.6), Rating.GOOD, NOW)
        assert result.new_state.elapsed_days == 7

    def test_interval_ordering(self) -> None:
        for seed in range(50):
            fsrs = FSRS(rng=random.Random(seed))
            outcomes = fsrs.preview(review_card(stability=4.0, days_ago=4), NOW)
            hard = outcomes[Rating.HARD].new_state.scheduled_days
            good = outcomes[Rating.GOOD].new_state.scheduled_days
            easy = outcomes[Rating.EASY].new_state.scheduled_days
            assert hard <= good < easy

    @pytest.mark.parametrize("stability", [400.0, 1e4, 1e6])
    def test_interval_cap(self, stability: float) -> None:
        fsrs = FSRS(rng=random.Random(7))
        outcomes = fsrs.preview(review_card(stability=stability, days_ago=30), NOW)
        for rating in (Rating.HARD, Rating.GOOD, Rating.EASY):
            assert outcomes[rating].new_state.scheduled_days <= 365
            assert outcomes[rating].new_state.due <= NOW + timedelta(days=365)

    def test_custom_interval_cap(self) -> None:
        fsrs = FSRS(maximum_interval=30, enable_fuzz=False)
        result = fsrs.review(review_card(stability=200.0, days_ago=200), Rating.EASY, NOW)
        assert result.new_state.scheduled_days == 30

    def test_difficulty_stays_bounded(self) -> None:
        card = review_card()
        for _ in range(20):
            card = self.fsrs.review(card, Rating.FORGOT, NOW).new_state
            assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY
        card = review_card()
        for _ in range(20):
            card = self.fsrs.review(card, Rating.EASY, card.due).new_state
            assert MIN_DIFFICULTY <= card.difficulty <= MAX_DIFFICULTY


class TestPreviewAndHelpers:
    def test_preview_matches_review_and_leaves_input_alone(self) -> None:
        fsrs = FSRS(enable_fuzz=False)
        card = review_card()
        snapshot = CardState(**card.__dict__)
        outcomes = fsrs.preview(card, NOW)
        assert set(outcomes) == set(Rating)
        for rating, result in outcomes.items():
            assert result == fsrs.review(card, rating, NOW)
            assert result.previous_state == card
        assert card == snapshot

    def test_int_rating_accepted_and_invalid_rejected(self) -> None:
        fsrs = FSRS(enable_fuzz=False)
        card = CardState.new(NOW)
        assert fsrs.review(card, 3, NOW).rating == Rating.GOOD
        with pytest.raises(ValueError):
            fsrs.review(card, 5, NOW)

    def test_fuzz_is_reproducible_and_bounded(self) -> None:
        card = review_card(stability=40.0, days_ago=40)
        a = FSRS(rng=random.Random(42)).review(card, Rating.GOOD, NOW).new_state
        b = FSRS(rng=random.Random(42)).review(card, Rating.GOOD, NOW).new_state
        exact = FSRS(enable_fuzz=False).review(card, Rating.GOOD, NOW).new_state
        assert a == b
        assert abs(a.scheduled_days - exact.scheduled_days) <= round(exact.scheduled_days * 0.05)

    def test_retrievability(self) -> None:
        fsrs = FSRS()
        assert fsrs.retrievability(CardState.new(NOW), NOW) == 0.0
        card = review_card(stability=10.0, days_ago=10)
        assert fsrs.retrievability(card, NOW) == pytest.approx(0.9)
        assert fsrs.retrievability(card, NOW + timedelta(days=10)) < 0.9

    def test_constructor_validation(self) -> None:
        with pytest.raises(ValueError):
            FSRS(weights=[1.0, 2.0])
        with pytest.raises(ValueError):
            FSRS(target_retention=1.5)
        with pytest.raises(ValueError):
            FSRS(maximum_interval=0)

    def test_higher_retention_shortens_intervals(self) -> None:
        card = review_card()
        relaxed = FSRS(target_retention=0.8, enable_fuzz=False).review(card, Rating.GOOD, NOW)
        strict = FSRS(target_retention=0.95, enable_fuzz=False).review(card, Rating.GOOD, NOW)
        assert strict.new_state.scheduled_days < relaxed.new_state.scheduled_days

    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(seconds=20), "now"),
            (timedelta(minutes=1), "in 1 minute"),
            (timedelta(minutes=5), "in 5 minutes"),
            (timedelta(hours=3), "in 3 hours"),
            (timedelta(days=1), "tomorrow"),
            (timedelta(days=12), "in 12 days"),
            (timedelta(days=60), "in 2 months"),
            (timedelta(days=400), "in 1 year"),
        ],
    )
    def test_format_next_review(self, delta: timedelta, expected: str) -> None:
        assert format_next_review(NOW + delta, NOW) == expected
