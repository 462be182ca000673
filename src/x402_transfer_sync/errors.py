"""Exception taxonomy for the sync engine.

None of these are recovered inside a single run. They propagate to the
orchestrator, get logged with job and facilitator context, and are re-raised
to whatever triggered the run.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for transfer sync errors."""


class TransportError(SyncError):
    """Raised when the indexer answers with a non-2xx status or is unreachable."""

    def __init__(self, status: int | None, body: str) -> None:
        self.status = status
        self.body = body
        shown = body if len(body) <= 500 else body[:500] + "..."
        super().__init__(f"Indexer request failed (status={status}): {shown}")


class ProviderError(SyncError):
    """Raised when a 2xx response carries an API-level error envelope."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__("Indexer returned errors: " + "; ".join(messages))


class MalformedResponseError(SyncError):
    """Raised when a response does not have the shape a transform requires."""


class StorageError(SyncError):
    """Raised when a watermark lookup or batch insert fails."""


class WatermarkError(SyncError):
    """Raised when a stream has no stored transfers and no configured start."""


class FacilitatorConfigError(SyncError):
    """Raised when the static facilitator table is invalid."""


class SyncTimeoutError(SyncError):
    """Raised when a run exceeds the job's maximum duration."""
