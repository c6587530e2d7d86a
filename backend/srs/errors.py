"""Exceptions raised by the SRS core and session runtime."""


class SRSError(Exception):
    """Base class for SRS errors."""


class InvalidSettingsError(SRSError, ValueError):
    """Planner settings are out of range."""


class NotFoundError(SRSError, LookupError):
    """A referenced record does not exist (or belongs to another learner)."""

    kind = "record"

    def __init__(self, record_id: int | str) -> None:
        super().__init__(f"{self.kind.capitalize()} {record_id} not found")
        self.record_id = record_id


class CardNotFoundError(NotFoundError):
    kind = "card"


class VocabularyNotFoundError(NotFoundError):
    kind = "vocabulary"


class LearnerNotFoundError(NotFoundError):
    kind = "learner"


class SessionNotFoundError(NotFoundError):
    kind = "session"


class NothingToScheduleError(SRSError):
    """Nothing is due and no unseen vocabulary is left; no plan may be created."""

    def __init__(self, learner_id: int) -> None:
        super().__init__(f"Nothing to schedule for learner {learner_id}")
        self.learner_id = learner_id


class DrillGenerationError(SRSError):
    """The drill generator returned something unusable."""


class SessionCompleteError(SRSError):
    """Every item in the session plan has already been handled."""


class WrongItemTypeError(SRSError):
    """The action does not apply to the current plan item."""
