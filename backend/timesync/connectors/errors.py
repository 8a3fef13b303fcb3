"""Error taxonomy for calls to the remote time-tracking service.

Retry eligibility is a property of the error class (``retryable``), never of
the message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    AUTH = "auth"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    PROTOCOL = "protocol"


class ConnectorError(Exception):
    """Base class for remote call failures."""

    kind: ErrorKind = ErrorKind.TRANSIENT
    retryable: bool = False
    # Systemic errors make every further call fail as well
    systemic: bool = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def reason(self) -> str:
        return self.message


class AuthError(ConnectorError):
    """401/403: the API key is invalid or lacks permissions."""

    kind = ErrorKind.AUTH
    systemic = True


class NotFoundError(ConnectorError):
    """404: the addressed resource does not exist (e.g. deleted remotely)."""

    kind = ErrorKind.NOT_FOUND


class TransientError(ConnectorError):
    """5xx, network failure, timeout or an unparseable success body."""

    kind = ErrorKind.TRANSIENT
    retryable = True


class RateLimitedError(ConnectorError):
    """Admission refused locally, or 429 from the remote service."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[float] = None, status_code: Optional[int] = None):
        super().__init__(message, status_code=status_code)
        self.retry_after = retry_after


class RemoteProtocolError(ConnectorError):
    """Response could not be understood, or the request was rejected as malformed."""

    kind = ErrorKind.PROTOCOL


class MalformedResponseError(TransientError):
    """A 2xx response with a non-empty body that is not valid JSON."""
