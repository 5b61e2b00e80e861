"""
Error taxonomy of the Click callback engine.

Every error except GrantError maps to a gateway response: a Click code,
a human readable note and an HTTP status. StorageError is the only one
answered with HTTP 500.
"""
from app.billing.codes import INTERNAL_ERROR_CODE, NOTE_INTERNAL_ERROR


class BillingError(Exception):
    """Base class: carries the Click code and note for the response."""

    http_status = 200

    def __init__(self, code: int, note: str) -> None:
        super().__init__(note)
        self.code = int(code)
        self.note = note


class ValidationError(BillingError):
    """Malformed, unsigned or wrong-amount request. Never a 500."""


class NotFoundError(BillingError):
    """Unknown transaction_param or no prepare on record."""


class ConflictError(BillingError):
    """Transition rejected: finalized with another outcome or gateway id mismatch."""


class StorageError(BillingError):
    """Store unreachable, lock wait timed out or CAS retry budget exhausted."""

    http_status = 500

    def __init__(self, detail: str) -> None:
        super().__init__(INTERNAL_ERROR_CODE, NOTE_INTERNAL_ERROR)
        self.detail = detail

    def __str__(self) -> str:
        return self.detail


class LockTimeoutError(StorageError):
    """Per-transaction lock was not acquired within the configured wait."""


class GrantError(Exception):
    """Access flag update failed after PAID was committed; retryable, never sent to Click."""

    def __init__(self, user_id: str, reason: str) -> None:
        super().__init__(f"grant failed for user {user_id}: {reason}")
        self.user_id = user_id
        self.reason = reason


__all__ = [
    "BillingError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "LockTimeoutError",
    "GrantError",
]
