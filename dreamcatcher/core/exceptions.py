"""Application errors. Each carries the HTTP status and machine-readable code it maps to."""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors that are reported to the client as JSON `{error, code}`."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND_ERROR"

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class UsageLimitExceededError(AppError):
    """A free-plan user has used up a metric for the current period."""

    status_code = 403
    code = "LIMIT_REACHED"

    def __init__(self, metric: str, limit: int, used: int, period: str, upgrade: str):
        self.metric = metric
        self.limit = limit
        self.used = used
        self.period = period
        self.upgrade = upgrade
        super().__init__(f"{metric.replace('_', ' ')} limit reached")

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body.update(
            {
                "metric": self.metric,
                "limit": self.limit,
                "used": self.used,
                "period": self.period,
                "upgrade": self.upgrade,
            }
        )
        return body


class PaymentProviderError(AppError):
    """Stripe or Apple rejected the request or could not be reached."""

    status_code = 400
    code = "PAYMENT_PROVIDER_ERROR"


class ProviderNotConfiguredError(AppError):
    status_code = 503
    code = "PROVIDER_NOT_CONFIGURED"


class WebhookSignatureError(AppError):
    status_code = 400
    code = "INVALID_SIGNATURE"

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class AnalystError(AppError):
    status_code = 502
    code = "AI_SERVICE_ERROR"
