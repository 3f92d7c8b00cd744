"""Error taxonomy for classification reads and corrective writes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID


class ReconciliationError(RuntimeError):
    """Base class for all errors raised by the reconciliation core and its stores."""


class ConflictError(ReconciliationError):
    """Existing records contradict each other and must be resolved by an administrator."""


class OrphanReferenceError(ReconciliationError):
    """A referenced location, provider or team does not exist."""

    def __init__(self, message: str, *, reference_id: UUID | None = None) -> None:
        super().__init__(message)
        self.reference_id = reference_id


class NoCandidateError(ReconciliationError):
    """No location or provider is available to complete a fix."""


class StoreError(ReconciliationError):
    """Transient failure while reading from or writing to the entity store."""


class StoreTimeoutError(StoreError):
    """A store operation did not finish within its time budget."""


class WriteConflictError(ReconciliationError):
    """A compare-and-set write lost against a concurrent writer.

    The state the write wanted to establish already exists, so callers treat
    this as "already fixed" rather than as a failure.
    """


class UnknownAPUserError(LookupError):
    """Raised when a status is requested for an AP user the store does not know."""

    def __init__(self, ap_user_id: UUID) -> None:
        super().__init__(f"Unknown AP user: {ap_user_id}")
        self.ap_user_id = ap_user_id
