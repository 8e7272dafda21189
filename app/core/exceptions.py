"""
Booking core error taxonomy.

Every error carries a human readable message plus a details dict and knows
the HTTP status it maps to, so app.main can render all of them with one
handler. Services raise these; endpoints never catch them.
"""
from typing import Any, Dict, Optional


class BookingCoreError(Exception):
    """Base class for errors raised by the booking core."""
    status_code: int = 400
    error_code: str = "BOOKING_CORE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BookingCoreError):
    """Malformed, missing or out-of-range input."""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFound(BookingCoreError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, entity: str, details: Optional[Dict[str, Any]] = None):
        self.entity = entity
        super().__init__(f"{entity} not found", details)


class AuthorizationDenied(NotFound):
    """
    The caller may not touch the resource.

    Rendered exactly like NotFound so a caller cannot probe other tenants
    for the existence of a row. The reason stays server side for logging.
    """

    def __init__(self, entity: str, reason: str = ""):
        self.reason = reason
        super().__init__(entity)


class InvalidStateTransition(BookingCoreError):
    status_code = 400
    error_code = "INVALID_STATE_TRANSITION"


class WrongWorkflowContext(BookingCoreError):
    """Transition exists but must be driven by a different workflow."""
    status_code = 403
    error_code = "WRONG_WORKFLOW_CONTEXT"


class AmbiguousRateConfiguration(BookingCoreError):
    """Two equally specific slabs match; an operator has to fix the contract."""
    status_code = 422
    error_code = "AMBIGUOUS_RATE_CONFIGURATION"


class ConcurrencyConflict(BookingCoreError):
    status_code = 409
    error_code = "CONCURRENCY_CONFLICT"


class TotalMismatch(BookingCoreError):
    """Caller supplied total disagrees with the computed aggregate."""
    status_code = 422
    error_code = "TOTAL_MISMATCH"


class CreditLimitExceeded(BookingCoreError):
    """Credit booking would take the billing customer past its contract limit."""
    status_code = 422
    error_code = "CREDIT_LIMIT_EXCEEDED"
