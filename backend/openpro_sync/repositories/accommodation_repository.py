from __future__ import annotations

from typing import Mapping, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from openpro_sync.core.errors import NotFoundError, ValidationError
from openpro_sync.domain.models.accommodation import Accommodation, AccommodationExternalId


class AccommodationRepository:
    """
    Accommodations and their per-platform external ids.
    """

    def __init__(self, session: Session):
        self.session = session

    # --- read ---

    def get(self, accommodation_id: str) -> Optional[Accommodation]:
        return self.session.get(Accommodation, accommodation_id)

    def get_or_raise(self, accommodation_id: str) -> Accommodation:
        accommodation = self.get(accommodation_id)
        if accommodation is None:
            raise NotFoundError("Accommodation", accommodation_id)
        return accommodation

    def list_all(self) -> Sequence[Accommodation]:
        stmt = select(Accommodation).order_by(Accommodation.name, Accommodation.id)
        return self.session.execute(stmt).scalars().all()

    def find_by_external_id(self, *, platform: str, external_id: str | int) -> Optional[Accommodation]:
        stmt = (
            select(Accommodation)
            .join(AccommodationExternalId)
            .where(
                AccommodationExternalId.platform == platform,
                AccommodationExternalId.external_id == str(external_id),
            )
        )
        return self.session.execute(stmt).scalars().first()

    # --- write ---

    def create(
        self,
        *,
        name: str,
        external_ids: Optional[Mapping[str, str | int | None]] = None,
    ) -> Accommodation:
        if not name or not name.strip():
            raise ValidationError("Accommodation name is required")

        accommodation = Accommodation(name=name.strip())
        self.session.add(accommodation)
        self.session.flush()

        for platform, external_id in (external_ids or {}).items():
            if external_id is not None and str(external_id) != "":
                self.set_external_id(accommodation.id, platform=platform, external_id=external_id)

        self.session.refresh(accommodation)
        return accommodation

    def rename(self, accommodation_id: str, name: str) -> Accommodation:
        if not name or not name.strip():
            raise ValidationError("Accommodation name is required")
        accommodation = self.get_or_raise(accommodation_id)
        accommodation.name = name.strip()
        self.session.flush()
        return accommodation

    def set_external_id(
        self,
        accommodation_id: str,
        *,
        platform: str,
        external_id: str | int,
    ) -> AccommodationExternalId:
        """(accommodation, platform) upsert."""
        stmt = select(AccommodationExternalId).where(
            AccommodationExternalId.accommodation_id == accommodation_id,
            AccommodationExternalId.platform == platform,
        )
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is None:
            row = AccommodationExternalId(
                accommodation_id=accommodation_id,
                platform=platform,
                external_id=str(external_id),
            )
            self.session.add(row)
        else:
            row.external_id = str(external_id)
        self.session.flush()
        self.session.expire(self.get_or_raise(accommodation_id), ["external_id_rows"])
        return row
