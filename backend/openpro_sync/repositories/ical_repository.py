from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from openpro_sync.domain.models.ical import IcalSyncConfig, IcalCacheEntry


class IcalSyncConfigRepository:
    """
    (accommodation, platform) -> iCal import/export URLs
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, accommodation_id: str, platform: str) -> Optional[IcalSyncConfig]:
        stmt = select(IcalSyncConfig).where(
            IcalSyncConfig.accommodation_id == accommodation_id,
            IcalSyncConfig.platform == platform,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_for_accommodation(self, accommodation_id: str) -> Sequence[IcalSyncConfig]:
        stmt = (
            select(IcalSyncConfig)
            .where(IcalSyncConfig.accommodation_id == accommodation_id)
            .order_by(IcalSyncConfig.platform)
        )
        return self.session.execute(stmt).scalars().all()

    def list_with_import_url(self) -> Sequence[IcalSyncConfig]:
        stmt = (
            select(IcalSyncConfig)
            .where(IcalSyncConfig.import_url.isnot(None))
            .order_by(IcalSyncConfig.accommodation_id, IcalSyncConfig.platform)
        )
        return self.session.execute(stmt).scalars().all()

    def upsert(
        self,
        *,
        accommodation_id: str,
        platform: str,
        import_url: Optional[str],
        export_url: Optional[str],
    ) -> IcalSyncConfig:
        config = self.get(accommodation_id, platform)
        if config is None:
            config = IcalSyncConfig(
                accommodation_id=accommodation_id,
                platform=platform,
                import_url=import_url,
                export_url=export_url,
            )
            self.session.add(config)
        else:
            config.import_url = import_url
            config.export_url = export_url
        self.session.flush()
        return config

    def touch_synced(self, config: IcalSyncConfig) -> None:
        config.last_synced_at = datetime.utcnow()
        self.session.flush()

    def delete(self, accommodation_id: str, platform: str) -> bool:
        result = self.session.execute(
            delete(IcalSyncConfig).where(
                IcalSyncConfig.accommodation_id == accommodation_id,
                IcalSyncConfig.platform == platform,
            )
        )
        self.session.flush()
        return result.rowcount > 0


class IcalCacheRepository:
    """
    Minimal key/value store (get / put / delete / list by prefix)
    backing the supplier feed cache.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, key: str) -> Optional[str]:
        entry = self.session.get(IcalCacheEntry, key)
        return entry.value if entry is not None else None

    def put(self, key: str, value: str) -> None:
        entry = self.session.get(IcalCacheEntry, key)
        if entry is None:
            self.session.add(IcalCacheEntry(key=key, value=value))
        else:
            entry.value = value
        self.session.flush()

    def delete(self, key: str) -> None:
        entry = self.session.get(IcalCacheEntry, key)
        if entry is not None:
            self.session.delete(entry)
            self.session.flush()

    def list_keys(self, prefix: str) -> list[str]:
        stmt = select(IcalCacheEntry.key).where(IcalCacheEntry.key.startswith(prefix, autoescape=True))
        return list(self.session.execute(stmt).scalars().all())
