"""Domain errors raised by services and rendered by the API layer.

Each error carries the HTTP status it maps to. ``app.main`` registers a
handler that turns any ``MarketplaceError`` into the standard
``{success: false, message, error}`` envelope.
"""

from typing import Optional


class MarketplaceError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationFailed(MarketplaceError):
    status_code = 400
    code = "validation_error"


class InvalidTimeSlot(ValidationFailed):
    code = "invalid_time_slot"


class InvariantViolation(MarketplaceError):
    status_code = 400
    code = "invariant_violation"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"


class NotAuthorized(MarketplaceError):
    status_code = 403
    code = "not_authorized"


class IllegalTransition(MarketplaceError):
    status_code = 400
    code = "illegal_transition"

    def __init__(self, action: str, current: str, kind: str = "booking"):
        super().__init__(f"Cannot {action} {kind} with status '{current}'")
        self.action = action
        self.current = current


class IllegalPaymentTransition(MarketplaceError):
    status_code = 400
    code = "illegal_payment_transition"


class SlotConflict(MarketplaceError):
    status_code = 409
    code = "slot_conflict"


class OverSold(MarketplaceError):
    status_code = 409
    code = "oversold"


class ExternalPaymentError(MarketplaceError):
    status_code = 500
    code = "payment_provider_error"


class ConfigMissing(MarketplaceError):
    status_code = 500
    code = "config_missing"


class IdempotentNoOp(MarketplaceError):
    """Raised when a webhook event was already processed; rendered as a 200 no-op."""
    status_code = 200
    code = "already_processed"
