"""
Domain error taxonomy for the trial / payment / entitlement workflows.

Every error carries a stable ``code`` and an HTTP-equivalent ``status_code`` so
the transport layer can turn it into an ``error_response`` without knowing the
workflow that raised it.
"""


class EntitlementError(Exception):
    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(EntitlementError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Invalid request"


class AmountMismatch(ValidationError):
    code = "AMOUNT_MISMATCH"
    default_message = "Amount does not match the plan price"


class Unauthenticated(EntitlementError):
    code = "UNAUTHENTICATED"
    status_code = 401
    default_message = "Authentication required"


class Forbidden(EntitlementError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Admin access required"


class NotFound(EntitlementError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class PlanNotFound(NotFound):
    code = "PLAN_NOT_FOUND"
    default_message = "Subscription plan not found"


class ConflictError(EntitlementError):
    """Logical precondition violation. Never retried."""

    code = "CONFLICT"
    status_code = 409
    default_message = "Conflict"


class AlreadyUsed(ConflictError):
    code = "TRIAL_ALREADY_USED"
    default_message = "Trial already used"


class AlreadyEntitled(ConflictError):
    code = "ALREADY_ENTITLED"
    default_message = "Pro users cannot submit new payments"


class DuplicatePending(ConflictError):
    code = "DUPLICATE_PENDING"
    default_message = "You already have a pending payment request"


class DuplicateTransaction(ConflictError):
    code = "DUPLICATE_TRANSACTION"
    default_message = "This transaction ID has already been submitted"


class InvalidStateTransition(ConflictError):
    code = "INVALID_STATE_TRANSITION"
    default_message = "Payment already processed"


class TransientStoreError(EntitlementError):
    code = "STORE_UNAVAILABLE"
    status_code = 503
    default_message = "Storage temporarily unavailable, please retry"
