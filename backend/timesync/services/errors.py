"""Business errors raised by the service layer.

Endpoints translate these into HTTP responses; they are never retried.
"""


class ServiceError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Conflict(ServiceError):
    """A business rule was violated, e.g. a duplicate active mapping."""


class GoalNotFound(ServiceError):
    """The goal does not exist or is not owned by the user."""


class EntryNotFound(ServiceError):
    """The time entry does not exist or is not owned by the user."""


class MappingNotFound(ServiceError):
    """The mapping does not exist or is not owned by the user."""


class ConflictNotFound(ServiceError):
    """The sync conflict does not exist, is not owned by the user or is already resolved."""


class NoActiveConnection(ServiceError):
    """The user has no active remote connection."""


class SyncAbortedError(ServiceError):
    """A systemic remote failure (authentication) stopped the run."""

    def __init__(self, message: str, run_id=None, cause=None):
        super().__init__(message)
        self.run_id = run_id
        self.cause = cause


class TimerNotRunning(ServiceError):
    """No remote timer is running for the user."""
