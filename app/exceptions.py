"""
Application exception classes

Errors raised by services and routes carry an HTTP status and a stable error code;
app.main turns them into the `{success: false, error: {...}}` envelope.
"""
from typing import Optional, Dict, Any


class AppError(Exception):
    """
    Base exception for all client-visible errors

    Attributes:
        message: human readable message
        status_code: HTTP status returned to the client
        error_code: stable machine readable code
        context: extra details (logged, not returned)
    """

    status_code: int = 500
    default_code: str = "SERVER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.error_code = error_code or self.default_code
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.error_code}


class ValidationFailedError(AppError):
    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, context={"field": field}, **kwargs)
        self.field = field


class AuthenticationError(AppError):
    status_code = 401
    default_code = "NOT_AUTHORIZED"


class SubscriptionRequiredError(AppError):
    status_code = 403
    default_code = "SUBSCRIPTION_REQUIRED"

    def __init__(self, required_tier: str):
        super().__init__(f"This feature requires a {required_tier} subscription")
        self.required_tier = required_tier


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"


class InvalidStatusError(AppError):
    status_code = 400
    default_code = "INVALID_STATUS"


class LimitReachedError(AppError):
    status_code = 429
    default_code = "LIMIT_REACHED"

    def __init__(self, action: str, limit: int, message: Optional[str] = None):
        super().__init__(
            message or f"Daily {action} limit reached. Upgrade to Pro for unlimited usage.",
            context={"action": action, "limit": limit},
        )
        self.action = action
        self.limit = limit


class MarketplaceError(Exception):
    """
    Marketplace call failures. Caught inside the adapters and turned into a degraded
    result; never returned to the client as-is.

    Attributes:
        source: amazon, aliexpress, temu, ebay
        status_code: upstream HTTP status when there was a response
        url: request URL
        retryable: whether tenacity should try again
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        retryable: bool = False,
        reason: Optional[str] = None,
    ):
        self.message = message
        self.source = source
        self._reason = reason
        self.status_code = status_code
        self.url = url
        self.retryable = retryable
        super().__init__(message)

    @property
    def reason(self) -> str:
        if self._reason:
            return self._reason
        if self.status_code:
            return f"http_{self.status_code}"
        return "request_failed"

