"""
Manufacturer Registry Service

Onboarding and admin edits of manufacturers, plus the one-time helper
that maps legacy free-text manufacturer references to canonical ids.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.config import settings
from furnilink.core.enum_utils import normalize_to_uppercase
from furnilink.core.errors import (
    AmbiguousAttributionError,
    ConflictError,
    MarketplaceError,
    NotFoundError,
)
from furnilink.models.manufacturer import Manufacturer, ManufacturerStatus
from furnilink.schemas.manufacturer import (
    LegacyManufacturerMatch,
    ManufacturerCreate,
    ManufacturerUpdate,
)

logger = logging.getLogger(__name__)


class ManufacturerService:
    """Service for the manufacturer registry"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_manufacturer(self, manufacturer_id: uuid.UUID) -> Manufacturer:
        manufacturer = await self.db.get(Manufacturer, manufacturer_id)
        if not manufacturer:
            raise NotFoundError("Manufacturer", manufacturer_id)
        return manufacturer

    async def list_manufacturers(
        self,
        keyword: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Manufacturer], int]:
        query = select(Manufacturer)
        if keyword:
            pattern = f"%{keyword.strip()}%"
            query = query.where(
                or_(
                    Manufacturer.name.ilike(pattern),
                    Manufacturer.full_name.ilike(pattern),
                    Manufacturer.short_name.ilike(pattern),
                    Manufacturer.code.ilike(pattern),
                )
            )
        if status:
            query = query.where(Manufacturer.status == status.upper())

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(Manufacturer.created_at.desc()).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def onboard_manufacturer(self, data: ManufacturerCreate) -> Manufacturer:
        """Create a manufacturer under its canonical code."""
        existing = await self.db.execute(
            select(Manufacturer.id).where(Manufacturer.code == data.code)
        )
        if existing.scalar_one_or_none():
            raise ConflictError(
                f"Manufacturer code '{data.code}' is already taken", {"code": data.code}
            )

        discount = data.default_discount_rate
        if discount is None:
            discount = Decimal(str(settings.DEFAULT_MANUFACTURER_DISCOUNT_RATE))
        commission = data.default_commission_rate
        if commission is None:
            commission = Decimal(str(settings.DEFAULT_MANUFACTURER_COMMISSION_RATE))

        manufacturer = Manufacturer(
            code=data.code,
            name=data.name,
            full_name=data.full_name,
            short_name=data.short_name,
            status=ManufacturerStatus.ACTIVE.value,
            default_discount_rate=discount,
            default_commission_rate=commission,
            contact_name=data.contact_name,
            contact_phone=data.contact_phone,
        )
        self.db.add(manufacturer)
        await self.db.commit()
        await self.db.refresh(manufacturer)

        logger.info(f"Manufacturer onboarded: {manufacturer.code} ({manufacturer.id})")
        return manufacturer

    async def update_manufacturer(
        self, manufacturer_id: uuid.UUID, data: ManufacturerUpdate
    ) -> Manufacturer:
        """
        Admin edit. Default-rate changes affect future resolutions only;
        placed orders keep their frozen line prices.
        """
        manufacturer = await self.get_manufacturer(manufacturer_id)

        update_data = data.model_dump(exclude_unset=True)
        if "status" in update_data:
            status = normalize_to_uppercase(
                update_data["status"], {s.value for s in ManufacturerStatus}
            )
            if status not in {s.value for s in ManufacturerStatus}:
                raise MarketplaceError(f"Invalid manufacturer status: {update_data['status']}")
            update_data["status"] = status
        for field in ("default_discount_rate", "default_commission_rate"):
            # These are required values, not overrides
            if field in update_data and update_data[field] is None:
                update_data.pop(field)

        for field, value in update_data.items():
            setattr(manufacturer, field, value)

        await self.db.commit()
        await self.db.refresh(manufacturer)

        logger.info(
            f"Manufacturer {manufacturer.code} updated: {', '.join(sorted(update_data)) or 'no changes'}"
        )
        return manufacturer

    async def match_legacy_manufacturer(self, reference: str) -> LegacyManufacturerMatch:
        """
        Map a legacy free-text reference (name, full name, short name or
        code, any case) to exactly one manufacturer.

        Migration use only; pricing and dispatch work on ids.
        """
        needle = (reference or "").strip().lower()
        if not needle:
            raise NotFoundError("Manufacturer", reference)

        fields = (
            ("code", Manufacturer.code),
            ("name", Manufacturer.name),
            ("full_name", Manufacturer.full_name),
            ("short_name", Manufacturer.short_name),
        )
        result = await self.db.execute(
            select(Manufacturer).where(
                or_(*[func.lower(column) == needle for _, column in fields])
            )
        )
        candidates = list(result.scalars().all())

        if not candidates:
            raise NotFoundError("Manufacturer", reference)
        if len(candidates) > 1:
            logger.warning(
                f"Legacy manufacturer reference '{reference}' matches {len(candidates)} manufacturers"
            )
            raise AmbiguousAttributionError(
                f"Reference '{reference}' matches more than one manufacturer",
                {"candidates": [str(m.id) for m in candidates]},
            )

        manufacturer = candidates[0]
        matched_field = next(
            name for name, _ in fields
            if (getattr(manufacturer, name) or "").lower() == needle
        )
        return LegacyManufacturerMatch(
            reference=reference,
            manufacturer_id=manufacturer.id,
            code=manufacturer.code,
            matched_field=matched_field,
        )
