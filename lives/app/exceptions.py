"""Custom exceptions for the lives service."""

from datetime import datetime


class LivesException(Exception):
    """Base class for service exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Lives service error"):
        self.message = message
        super().__init__(message)


class QuotaExhaustedError(LivesException):
    """Raised when a learner has no units left for the current day.

    Carries the next scheduled reset so clients can tell the learner
    when to come back. Maps to HTTP 403 Forbidden.
    """
    status_code = 403
    error_code = "QUOTA_EXHAUSTED"

    def __init__(
        self,
        next_reset_at: datetime,
        units_remaining: int = 0,
        detail: str | None = None,
    ):
        self.next_reset_at = next_reset_at
        self.units_remaining = units_remaining
        super().__init__(detail or "You have no lives remaining. Try again tomorrow.")

    def to_response(self) -> dict:
        """Convert to API response format."""
        return {
            "error": "quota_exhausted",
            "code": self.error_code,
            "message": self.message,
            "next_reset_at": self.next_reset_at.isoformat(),
            "units_remaining": self.units_remaining,
        }


class DuplicateRecordError(LivesException):
    """Raised by the store when a record for (user_id, date) already exists.

    A concurrent first touch won the insert race. The service recovers by
    re-fetching; this never reaches HTTP callers.
    """
    status_code = 409

    def __init__(self, user_id: str, record_date):
        self.user_id = user_id
        self.record_date = record_date
        super().__init__(f"Quota record already exists for {user_id} on {record_date}")


class QuotaStoreError(LivesException):
    """Raised on infrastructure failures (database error, timeout, connection).

    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, operation: str, detail: str = "Quota store unavailable"):
        self.operation = operation
        super().__init__(f"{detail} ({operation})")


class AuthenticationError(LivesException):
    """Raised when the caller identity or admin token is missing or invalid.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401

    def __init__(self, detail: str = "Missing or invalid credentials"):
        self.detail = detail
        super().__init__(detail)
