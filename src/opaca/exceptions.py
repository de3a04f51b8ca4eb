"""Exception hierarchy for opaca.

Every request-time error carries an HTTP-style ``status_code`` and a
machine-readable ``code`` so the CRUD engine can turn it into the JSON
error envelope ``{"error": code, "message": ..., "details"?: ...}``.
"""

from __future__ import annotations

from typing import Any


class OpacaError(Exception):
    """Root exception for the entire opaca toolkit."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.code.replace("_", " ")
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error envelope returned to callers."""
        return {"error": self.code, "message": self.message}


class ConfigurationError(OpacaError):
    """Raised when collection declarations or engine policies are invalid.

    Fatal at build time. At request time (for example a soft-delete column
    that does not exist on the table) it surfaces as a 500.
    """

    code = "configuration_error"


class BadRequestError(OpacaError):
    """Raised when the request body or parameters cannot be parsed."""

    status_code = 400
    code = "bad_request"


class TenantError(OpacaError):
    """Raised when tenant scoping is required but no tenant id was supplied."""

    status_code = 400
    code = "tenant_required"


class AuthorizationError(OpacaError):
    """Raised when an ACL gate denies the operation."""

    status_code = 403
    code = "forbidden"


class NotFoundError(OpacaError):
    """Raised when a table or row is not visible to the caller."""

    status_code = 404
    code = "not_found"


class ValidationError(OpacaError):
    """Raised when a payload fails the insert or update schema.

    Carries structured errors: ``{field: [messages]}``.
    """

    status_code = 422
    code = "validation_error"

    def __init__(self, errors: dict[str, list[str]] | str | None = None) -> None:
        if isinstance(errors, str):
            self.errors: dict[str, list[str]] = {"__root__": [errors]}
        elif errors is None:
            self.errors = {}
        else:
            self.errors = errors
        super().__init__("Payload failed validation")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["details"] = self.errors
        return data


class RateLimitError(OpacaError):
    """Raised when the rate limiter rejects a request."""

    status_code = 429
    code = "rate_limited"


class StorageError(OpacaError):
    """Raised when the storage handle fails in an unclassified way."""

    code = "storage_error"


class HookError(OpacaError):
    """Raised when a lifecycle hook fails under the strict failure policy."""

    code = "hook_error"


class AuditError(OpacaError):
    """Raised when the audit sink fails under the strict failure policy."""

    code = "audit_error"


__all__: list[str] = [
    "AuditError",
    "AuthorizationError",
    "BadRequestError",
    "ConfigurationError",
    "HookError",
    "NotFoundError",
    "OpacaError",
    "RateLimitError",
    "StorageError",
    "TenantError",
    "ValidationError",
]
