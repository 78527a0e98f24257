# island_tracker/domain/__init__.py
from island_tracker.domain.entities import (
    Challenge,
    ChallengeDay,
    ChallengeProgress,
    ChallengeStatus,
    DayStatus,
)
from island_tracker.domain.errors import (
    ChallengeError,
    Forbidden,
    InvalidTimezone,
    InvalidTransition,
    InvariantViolation,
    NotAuthenticated,
    NotFound,
    PersistenceError,
)
