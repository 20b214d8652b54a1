"""
Domain errors raised by services and mapped to HTTP responses in main.py.

Each error carries a stable ``code`` and an HTTP status so the global
handler can render the structured {"error": {"code", "message"}} body.
"""

from typing import Optional


class ExpenseTrackerError(Exception):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class RateUnavailable(ExpenseTrackerError):
    """No fresh cached rate and the provider could not supply a usable one."""

    code = "FX_RATE_UNAVAILABLE"
    status_code = 503

    def __init__(self, currency: str, reason: str, details: Optional[dict] = None):
        super().__init__(
            f"Exchange rate for {currency} is unavailable: {reason}",
            {"currency": currency, **(details or {})},
        )
        self.currency = currency
        self.reason = reason


class TenantUnavailable(ExpenseTrackerError):
    """A tenant-scoped operation was attempted without a resolved tenant."""

    code = "TENANT_UNAVAILABLE"
    status_code = 403
