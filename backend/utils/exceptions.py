"""Business rule and infrastructure exceptions.

Business rule errors are expected, user-facing and never retried. Each carries
a stable ``code`` for API clients and the HTTP status the API renders it with.
``TransientBackendError`` is kept outside that hierarchy so callers can tell
"try again" apart from "this action is not allowed".
"""


class BusinessRuleError(Exception):
    """Base class for expected, non-retryable rule violations."""

    code = "business_rule_violation"
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(BusinessRuleError):
    """Malformed input, fatal to the single request."""

    code = "validation_error"
    status_code = 400


class InsufficientBalanceError(BusinessRuleError):
    """Account cannot cover a debit."""

    code = "insufficient_balance"
    status_code = 400

    def __init__(self, message: str | None = None, shortfall: int | None = None):
        if message is None and shortfall is not None:
            message = f"Insufficient balance - need {shortfall} more coins"
        super().__init__(message)
        self.shortfall = shortfall


class MatchFullError(BusinessRuleError):
    code = "match_full"
    status_code = 409


class AlreadyJoinedError(BusinessRuleError):
    code = "already_joined"
    status_code = 409


class MatchNotJoinableError(BusinessRuleError):
    code = "match_not_joinable"
    status_code = 409


class DuplicatePendingError(BusinessRuleError):
    code = "duplicate_pending"
    status_code = 409


class OutsideWindowError(BusinessRuleError):
    code = "outside_window"
    status_code = 403


class InvalidTransitionError(BusinessRuleError):
    code = "invalid_transition"
    status_code = 409


class ForbiddenError(BusinessRuleError):
    """Caller lacks the required role. Never names the gated resource."""

    code = "forbidden"
    status_code = 403

    def __init__(self, message: str | None = None):
        super().__init__(message or "You are not allowed to perform this action")


class NotVerifiedError(BusinessRuleError):
    code = "not_verified"
    status_code = 409


class NotFoundError(BusinessRuleError):
    code = "not_found"
    status_code = 404


class TransientBackendError(RuntimeError):
    """Backend temporarily unavailable; the caller may retry."""

    code = "try_again"
    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable, please try again"):
        super().__init__(message)
        self.message = message


class AlreadyClaimedError(BusinessRuleError):
    code = "already_claimed"
    status_code = 409
