"""
iCal Cache Service

Supplier feed cache with history (last 10 versions, for debugging).

Keys:
    supplier:{id}[:debut:D][:fin:D][:hebergement:H]:current
    supplier:{id}[:debut:D][:fin:D][:hebergement:H]:history:{timestamp}

The timestamp is ISO 8601 basic format (20250601T101500123456Z) so that it
holds no ':' and sorts lexicographically.
Rotation is read-then-write without compare-and-swap; two concurrent
updates of the same key can interleave.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from openpro_sync.repositories.ical_repository import IcalCacheRepository

logger = logging.getLogger(__name__)

MAX_HISTORY_VERSIONS = 10
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


@dataclass
class CacheVersion:
    timestamp: str          # "current" for the live version
    size: int


def build_base_key(
    supplier_id: int,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
    accommodation_id: Optional[str] = None,
) -> str:
    key = f"supplier:{supplier_id}"
    if start:
        key += f":debut:{start.isoformat()}"
    if end:
        key += f":fin:{end.isoformat()}"
    if accommodation_id:
        key += f":hebergement:{accommodation_id}"
    return key


def current_key(base_key: str) -> str:
    return f"{base_key}:current"


def history_prefix(base_key: str) -> str:
    return f"{base_key}:history:"


class IcalCacheService:
    def __init__(self, db: Session):
        self.store = IcalCacheRepository(db)

    def get(self, base_key: str) -> Optional[str]:
        return self.store.get(current_key(base_key))

    def update(self, base_key: str, content: str, *, now: Optional[datetime] = None) -> None:
        """Store content as current; the previous current value moves to history."""
        timestamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)

        previous = self.store.get(current_key(base_key))
        if previous is not None:
            self.store.put(f"{history_prefix(base_key)}{timestamp}", previous)

        self.store.put(current_key(base_key), content)
        self._prune_history(base_key)

    def _history_keys(self, base_key: str) -> list[str]:
        """History keys, most recent first."""
        prefix = history_prefix(base_key)
        keys = [k for k in self.store.list_keys(prefix) if ":" not in k[len(prefix):]]
        return sorted(keys, key=lambda k: k[len(prefix):], reverse=True)

    def _prune_history(self, base_key: str) -> int:
        stale = self._history_keys(base_key)[MAX_HISTORY_VERSIONS:]
        for key in stale:
            self.store.delete(key)
        if stale:
            logger.debug(f"ICAL_CACHE: pruned {len(stale)} history version(s) of {base_key}")
        return len(stale)

    def history(self, base_key: str) -> list[CacheVersion]:
        """Current version first, then history from newest to oldest."""
        versions: list[CacheVersion] = []
        current = self.store.get(current_key(base_key))
        if current is not None:
            versions.append(CacheVersion(timestamp="current", size=len(current)))

        prefix = history_prefix(base_key)
        for key in self._history_keys(base_key):
            value = self.store.get(key)
            if value is not None:
                versions.append(CacheVersion(timestamp=key[len(prefix):], size=len(value)))
        return versions

    def get_version(self, base_key: str, timestamp: str) -> Optional[str]:
        if timestamp == "current":
            return self.get(base_key)
        return self.store.get(f"{history_prefix(base_key)}{timestamp}")

    def invalidate(self, supplier_id: int) -> int:
        """Drop every current document of the supplier (all filter sets); history is kept."""
        removed = 0
        for key in self.store.list_keys(f"supplier:{supplier_id}:"):
            if key.endswith(":current"):
                self.store.delete(key)
                removed += 1
        if removed:
            logger.info(f"ICAL_CACHE: invalidated {removed} cached feed(s) for supplier {supplier_id}")
        return removed
