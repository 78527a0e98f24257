# island_tracker/domain/errors.py


class ChallengeError(Exception):
    """Base class for every error raised by the challenge core."""


class NotFound(ChallengeError):
    pass


class Forbidden(ChallengeError):
    pass


class NotAuthenticated(ChallengeError):
    pass


class InvalidTransition(ChallengeError):
    """A day or challenge was asked to move out of a state that does not allow it."""

    def __init__(self, message: str, *, current: str | None = None, target: str | None = None):
        super().__init__(message)
        self.current = current
        self.target = target


class PersistenceError(ChallengeError):
    """
    The snapshot write failed.
    The in-memory result of the operation is not durable.
    """


class InvalidTimezone(ChallengeError, ValueError):
    pass


class InvariantViolation(ChallengeError):
    pass
