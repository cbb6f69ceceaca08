from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class SyncWarning:
    """One best-effort failure recorded by a batch pass."""
    type: str
    message: str
    accommodation_id: Optional[str] = None
    rate_plan_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return asdict(self)


class SyncWarnings:
    """
    Accumulator for non-fatal sync warnings.

    The application owns one instance (exposed on the admin API); tests and
    one-off runs create their own.
    """

    def __init__(self) -> None:
        self._items: list[SyncWarning] = []
        self._lock = threading.Lock()

    def add(
        self,
        type: str,
        message: str,
        *,
        accommodation_id: Optional[str] = None,
        rate_plan_id: Optional[str] = None,
    ) -> SyncWarning:
        warning = SyncWarning(
            type=type,
            message=message,
            accommodation_id=accommodation_id,
            rate_plan_id=rate_plan_id,
        )
        with self._lock:
            self._items.append(warning)
        logger.warning(f"SYNC_WARNING: [{type}] {message}")
        return warning

    def list(self) -> list[SyncWarning]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
