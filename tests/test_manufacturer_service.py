"""Manufacturer registry and legacy reference matching."""

import logging
from decimal import Decimal

import pytest

from furnilink.core.errors import (
    AmbiguousAttributionError,
    ConflictError,
    MarketplaceError,
    NotFoundError,
)
from furnilink.schemas.manufacturer import ManufacturerUpdate
from furnilink.services.manufacturer_service import ManufacturerService


class TestRegistry:

    @pytest.mark.asyncio
    async def test_onboard_normalizes_code(self, seed):
        maker = await seed.manufacturer(" oak ", name="Oak House", discount="90", commission="5")

        assert maker.code == "OAK"
        assert maker.status == "ACTIVE"
        assert maker.default_discount_rate == Decimal("90")
        assert maker.default_commission_rate == Decimal("5")

    @pytest.mark.asyncio
    async def test_duplicate_code_conflicts(self, seed):
        await seed.manufacturer("DUP")
        with pytest.raises(ConflictError):
            await seed.manufacturer("dup", name="Another")

    @pytest.mark.asyncio
    async def test_update_status_and_rates(self, db_session, seed):
        maker = await seed.manufacturer("UPD", commission="5")
        service = ManufacturerService(db_session)

        updated = await service.update_manufacturer(
            maker.id,
            ManufacturerUpdate(status="inactive", default_commission_rate=8, default_discount_rate=None),
        )

        assert updated.status == "INACTIVE"
        assert updated.default_commission_rate == Decimal("8")
        assert updated.default_discount_rate == Decimal("100")

    @pytest.mark.asyncio
    async def test_invalid_status(self, db_session, seed):
        maker = await seed.manufacturer("BAD")
        with pytest.raises(MarketplaceError):
            await ManufacturerService(db_session).update_manufacturer(
                maker.id, ManufacturerUpdate(status="retired")
            )

    @pytest.mark.asyncio
    async def test_list_by_keyword(self, db_session, seed):
        await seed.manufacturer("WAL", name="Walnut Works")
        await seed.manufacturer("BIR", name="Birch Co")

        items, total = await ManufacturerService(db_session).list_manufacturers(keyword="walnut")

        assert total == 1
        assert items[0].code == "WAL"


class TestLegacyMatch:

    @pytest.mark.asyncio
    async def test_match_by_code_any_case(self, db_session, seed):
        maker = await seed.manufacturer("TEAK", name="Teak Masters")

        match = await ManufacturerService(db_session).match_legacy_manufacturer("  teak ")

        assert match.manufacturer_id == maker.id
        assert match.matched_field == "code"

    @pytest.mark.asyncio
    async def test_match_by_short_name(self, db_session, seed):
        maker = await seed.manufacturer("ASH", name="Ash & Elm Ltd", short_name="AshElm")

        match = await ManufacturerService(db_session).match_legacy_manufacturer("ashelm")

        assert match.manufacturer_id == maker.id
        assert match.matched_field == "short_name"

    @pytest.mark.asyncio
    async def test_ambiguous_reference(self, db_session, seed, caplog):
        await seed.manufacturer("PINE", name="Pine")
        await seed.manufacturer("PN2", name="Pine Shop", short_name="pine")

        with caplog.at_level(logging.WARNING):
            with pytest.raises(AmbiguousAttributionError) as exc_info:
                await ManufacturerService(db_session).match_legacy_manufacturer("PINE")

        assert len(exc_info.value.details["candidates"]) == 2
        assert any("matches 2 manufacturers" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_no_match(self, db_session, seed):
        await seed.manufacturer("MAPLE")
        service = ManufacturerService(db_session)

        with pytest.raises(NotFoundError):
            await service.match_legacy_manufacturer("Cedar")
        with pytest.raises(NotFoundError):
            await service.match_legacy_manufacturer("   ")
