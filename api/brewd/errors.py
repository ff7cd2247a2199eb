"""Error taxonomy for the social-graph services.

Every error carries the operation that failed and the key it was working on,
so store-level failures can be traced back to the pair or row involved.
Only InvariantViolation signals a defect; the rest are expected outcomes that
are safe to show to the user.
"""

from __future__ import annotations

from typing import Any


class SocialError(Exception):
    """Base exception for all brewd social-graph errors."""

    code = "social_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        key: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.key = key

    def __str__(self) -> str:
        if self.operation is None:
            return self.message
        return f"{self.operation}({self.key}): {self.message}"

    def to_response(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class Conflict(SocialError):
    code = "conflict"
    http_status = 409


class NotFound(SocialError):
    code = "not_found"
    http_status = 404


class InvariantViolation(SocialError):
    """The store reached a state the state machine should never produce."""

    code = "invariant_violation"
    http_status = 500


class Unauthorized(SocialError):
    code = "unauthorized"
    http_status = 401


class Forbidden(Unauthorized):
    """Authenticated, but acting on a row owned by another user."""

    code = "forbidden"
    http_status = 403


class Timeout(SocialError):
    code = "timeout"
    http_status = 504


class StoreError(SocialError):
    code = "store_error"
    http_status = 500


class TransientStoreError(StoreError):
    """Retryable connection or serialization failure."""

    code = "store_unavailable"
    http_status = 503
