# ============================================================
# errors.py: Typed errors of the reservation engine
# ------------------------------------------------------------
# The API layer turns each of them into a JSON response with
# the matching HTTP status; nothing below the API raises
# HTTPException directly.
# ============================================================
from typing import Any, Dict, Optional


class BookingError(Exception):
    """Base class for every error the engine reports to its callers."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BookingError):
    """Missing or malformed input."""

    status_code = 400


class NotFound(BookingError):
    status_code = 404


class Conflict(BookingError):
    status_code = 409


class Unavailable(Conflict):
    """The block instance is already held."""


class QuotaExceeded(BookingError):
    """The user reached the daily reservation limit."""

    status_code = 400


class Forbidden(BookingError):
    status_code = 403


class PaymentError(BookingError):
    """Gateway failure (502) or a payment the provider did not authorize (400)."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, status_code: int = 502):
        super().__init__(message, details)
        self.status_code = status_code


class InternalError(BookingError):
    status_code = 500
