"""
Domain errors

- ValidationError: malformed input (dates, ids), never retried
- NotFoundError: referenced accommodation / rate plan / booking missing
- UpstreamError: OpenPro or remote iCal call failed, never retried internally
- ConflictError: ordering bug, e.g. linking a rate plan that has no external id yet
- OperationCancelledError: the caller's cancel signal was set between iterations
"""
from __future__ import annotations

import asyncio
from typing import Optional


class SyncError(Exception):
    """Base class for every error raised by the sync core."""


class ValidationError(SyncError):
    pass


class IcalParseError(ValidationError):
    pass


class NotFoundError(SyncError):
    def __init__(self, entity: str, identifier: object):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class UpstreamError(SyncError):
    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConflictError(SyncError):
    pass


class OperationCancelledError(SyncError):
    pass


def check_cancelled(cancel: Optional[asyncio.Event]) -> None:
    """Raise OperationCancelledError if the caller asked to stop."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Operation cancelled by caller")
