"""
iCal models

- IcalSyncConfig: (accommodation, platform) -> import URL / export URL
- IcalCacheEntry: key/value rows backing the supplier feed cache
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from openpro_sync.db.base import Base
from openpro_sync.domain.models._ids import new_id


class IcalSyncConfig(Base):
    __tablename__ = "ical_sync_configs"
    __table_args__ = (
        UniqueConstraint("accommodation_id", "platform", name="uq_ical_sync_configs_platform"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    accommodation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("accommodations.id"), nullable=False, index=True
    )
    platform: Mapped[str] = mapped_column(String(32), nullable=False)

    import_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    export_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<IcalSyncConfig {self.accommodation_id} {self.platform}>"


class IcalCacheEntry(Base):
    __tablename__ = "ical_cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<IcalCacheEntry {self.key} ({len(self.value)} chars)>"
