"""Effective discount and commission resolution."""

import logging
import uuid
from decimal import Decimal

import pytest

from furnilink.core.errors import (
    ConflictError,
    InvalidScopeError,
    NoApplicableAuthorizationError,
    NotFoundError,
)
from furnilink.schemas.manufacturer import ManufacturerUpdate
from furnilink.schemas.order import OrderCreate
from furnilink.schemas.tier_policy import PartnerRule, TierPolicyUpsert, TierRule, TierRuleSetCreate
from furnilink.services.authorization_service import AuthorizationService
from furnilink.services.commission_resolver import (
    CommissionHop,
    CommissionResolver,
    RateResolution,
    RateSource,
    money,
    override_rate,
)
from furnilink.services.manufacturer_service import ManufacturerService
from furnilink.services.order_service import OrderService
from furnilink.services.scope_evaluator import ProductRef
from furnilink.services.tier_policy_service import TierPolicyService
from tests.conftest import designer, line


class TestOverrideRate:

    def test_zero_and_none_are_unset(self):
        assert override_rate(None) is None
        assert override_rate(0) is None
        assert override_rate(Decimal("0.00")) is None
        assert override_rate("") is None

    def test_non_zero_is_kept(self):
        assert override_rate("85") == Decimal("85")


class TestApplyPrice:

    def test_commissions_are_independent_per_hop(self):
        resolution = RateResolution(
            manufacturer_id=uuid.uuid4(),
            actor_id=uuid.uuid4(),
            product_id="p",
            chain=[],
            is_owner=False,
            discount_rate=Decimal("85"),
            discount_source=RateSource.EDGE,
        )
        for depth, rate in enumerate(("60", "50")):
            resolution.commission_breakdown.append(
                CommissionHop(
                    depth=depth,
                    grantor_id=uuid.uuid4(),
                    actor_id=uuid.uuid4(),
                    authorization_id=uuid.uuid4(),
                    commission_rate=Decimal(rate),
                    source=RateSource.EDGE,
                )
            )

        resolution.apply_price("999.99", quantity=2)

        assert resolution.unit_price == Decimal("849.99")
        assert resolution.subtotal == Decimal("1699.98")
        assert [h.commission_amount for h in resolution.commission_breakdown] == [
            Decimal("1019.99"),
            Decimal("849.99"),
        ]
        # Not normalised: total payout may exceed the subtotal
        assert resolution.manufacturer_margin == Decimal("-170.00")

    def test_money_rounds_half_up(self):
        assert money(Decimal("0.125")) == Decimal("0.13")


class TestResolveDirectGrant:

    @pytest.mark.asyncio
    async def test_end_to_end_default_commission_follows_manufacturer(self, db_session, seed):
        maker = await seed.manufacturer("GS", commission="10")
        sofa = await seed.product(maker, price="1000")
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_designer_id=designer_id, scope="all", min_discount_rate=85)

        resolver = CommissionResolver(db_session)
        first = await resolver.resolve_product(maker.id, designer_id, sofa.id)

        assert first.discount_rate == Decimal("85")
        assert first.discount_source == RateSource.EDGE
        assert len(first.commission_breakdown) == 1
        hop = first.commission_breakdown[0]
        assert hop.commission_rate == Decimal("10")
        assert hop.source == RateSource.MANUFACTURER_DEFAULT
        assert first.unit_price == Decimal("850.00")

        order = await seed.order(line(sofa, quantity=2), placed_by=designer(designer_id))
        frozen_subtotal = order.items[0].subtotal
        assert frozen_subtotal == Decimal("1700.00")
        assert Decimal(order.items[0].commission_breakdown[0]["commission_rate"]) == Decimal("10")

        await ManufacturerService(db_session).update_manufacturer(
            maker.id, ManufacturerUpdate(default_commission_rate=Decimal("12"))
        )
        second = await resolver.resolve_product(maker.id, designer_id, sofa.id)
        assert second.commission_breakdown[0].commission_rate == Decimal("12")
        assert second.discount_rate == Decimal("85")

        placed = await OrderService(db_session).get_order(order.id)
        assert placed.items[0].subtotal == frozen_subtotal
        assert Decimal(placed.items[0].commission_breakdown[0]["commission_rate"]) == Decimal("10")

    @pytest.mark.asyncio
    async def test_stored_zero_overrides_fall_back_to_defaults(self, db_session, seed):
        maker = await seed.manufacturer("ZR", discount="90", commission="7")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.raw_edge(
            maker,
            designer_id,
            min_discount_rate=Decimal("0"),
            commission_rate=Decimal("0"),
        )

        resolution = await CommissionResolver(db_session).resolve_product(
            maker.id, designer_id, sofa.id
        )

        assert resolution.discount_rate == Decimal("90")
        assert resolution.discount_source == RateSource.MANUFACTURER_DEFAULT
        assert resolution.commission_breakdown[0].commission_rate == Decimal("7")
        assert resolution.commission_breakdown[0].source == RateSource.MANUFACTURER_DEFAULT

    @pytest.mark.asyncio
    async def test_zero_in_grant_payload_is_stored_as_unset(self, seed):
        maker = await seed.manufacturer("ZP")
        edge = await seed.grant(
            maker, to_designer_id=uuid.uuid4(), min_discount_rate=0, commission_rate="0"
        )
        assert edge.min_discount_rate is None
        assert edge.commission_rate is None

    @pytest.mark.asyncio
    async def test_edge_commission_beats_manufacturer_default(self, db_session, seed):
        maker = await seed.manufacturer("EC", commission="10")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_designer_id=designer_id, commission_rate=6)

        resolution = await CommissionResolver(db_session).resolve_product(
            maker.id, designer_id, sofa.id
        )
        assert resolution.commission_breakdown[0].commission_rate == Decimal("6")
        assert resolution.commission_breakdown[0].source == RateSource.EDGE

    @pytest.mark.asyncio
    async def test_owner_pays_list_price(self, db_session, seed):
        maker = await seed.manufacturer("OW", discount="80", commission="10")
        sofa = await seed.product(maker, price="1200")

        resolution = await CommissionResolver(db_session).resolve_product(
            maker.id, maker.id, sofa.id
        )

        assert resolution.is_owner
        assert resolution.discount_rate == Decimal("100")
        assert resolution.discount_source == RateSource.OWNER
        assert resolution.commission_breakdown == []
        assert resolution.subtotal == Decimal("1200.00")


class TestTierRules:

    @pytest.mark.asyncio
    async def test_partner_rule_overrides_same_depth_rule(self, db_session, seed):
        maker = await seed.manufacturer("TR", commission="3")
        partner = await seed.manufacturer("PX")
        other = await seed.manufacturer("PY")
        sofa = await seed.product(maker)

        await TierPolicyService(db_session).create_rule_set(
            maker.id,
            TierRuleSetCreate(
                name="Standard",
                rules=[TierRule(depth=0, commission_rate=Decimal("10"))],
                partner_rules=[PartnerRule(partner_id=partner.id, commission_rate=Decimal("15"))],
            ),
        )
        await seed.grant(maker, to_manufacturer=partner, commission_rate=5)
        await seed.grant(maker, to_manufacturer=other, commission_rate=5)

        resolver = CommissionResolver(db_session)
        for_partner = await resolver.resolve_product(maker.id, partner.id, sofa.id)
        for_other = await resolver.resolve_product(maker.id, other.id, sofa.id)

        assert for_partner.commission_breakdown[0].commission_rate == Decimal("15")
        assert for_partner.commission_breakdown[0].source == RateSource.PARTNER_RULE
        assert for_other.commission_breakdown[0].commission_rate == Decimal("10")
        assert for_other.commission_breakdown[0].source == RateSource.DEPTH_RULE

    @pytest.mark.asyncio
    async def test_most_recently_activated_rule_set_wins(self, db_session, seed):
        maker = await seed.manufacturer("RA")
        partner = await seed.manufacturer("RB")
        sofa = await seed.product(maker)
        policies = TierPolicyService(db_session)

        older = await policies.create_rule_set(
            maker.id, TierRuleSetCreate(name="Old", rules=[TierRule(depth=0, commission_rate=4)])
        )
        await policies.create_rule_set(
            maker.id, TierRuleSetCreate(name="New", rules=[TierRule(depth=0, commission_rate=9)])
        )
        await seed.grant(maker, to_manufacturer=partner)
        resolver = CommissionResolver(db_session)

        resolution = await resolver.resolve_product(maker.id, partner.id, sofa.id)
        assert resolution.commission_breakdown[0].commission_rate == Decimal("9")

        await policies.set_rule_set_active(older.id, True)
        resolution = await resolver.resolve_product(maker.id, partner.id, sofa.id)
        assert resolution.commission_breakdown[0].commission_rate == Decimal("4")
        assert resolution.rule_set_id == older.id

    @pytest.mark.asyncio
    async def test_effective_tier_rule_reports_depth(self, db_session, seed):
        maker = await seed.manufacturer("ET", commission="2")
        middle = await seed.manufacturer("EM")
        designer_id = uuid.uuid4()
        await TierPolicyService(db_session).create_rule_set(
            maker.id,
            TierRuleSetCreate(name="Deep", rules=[TierRule(depth=1, commission_rate=Decimal("3.5"))]),
        )
        await seed.grant(maker, to_manufacturer=middle)
        await seed.grant(middle, to_designer_id=designer_id)

        rule = await CommissionResolver(db_session).effective_tier_rule(maker.id, designer_id)

        assert rule["depth"] == 1
        assert rule["source"] == RateSource.DEPTH_RULE
        assert rule["commission_rate"] == Decimal("3.5")


class TestMultiHopChains:

    @pytest.mark.asyncio
    async def test_two_hop_chain(self, db_session, seed):
        maker = await seed.manufacturer("MH", discount="95", commission="5")
        dealer = await seed.manufacturer("DL")
        sofa = await seed.product(maker, price="2000")
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_manufacturer=dealer, commission_rate=8)
        await seed.grant(dealer, to_designer_id=designer_id, min_discount_rate=90)

        resolution = await CommissionResolver(db_session).resolve_product(
            maker.id, designer_id, sofa.id
        )

        assert resolution.chain == [maker.id, dealer.id, designer_id]
        assert resolution.discount_rate == Decimal("90")
        assert [(h.depth, h.actor_id, h.commission_rate, h.source) for h in resolution.commission_breakdown] == [
            (0, dealer.id, Decimal("8"), RateSource.EDGE),
            (1, designer_id, Decimal("5"), RateSource.MANUFACTURER_DEFAULT),
        ]
        assert resolution.subtotal == Decimal("1800.00")
        assert resolution.manufacturer_margin == Decimal("1566.00")

    @pytest.mark.asyncio
    async def test_revoked_hop_breaks_the_chain(self, db_session, seed):
        maker = await seed.manufacturer("GA")
        dealer = await seed.manufacturer("GB")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        upstream = await seed.grant(maker, to_manufacturer=dealer)
        await seed.grant(dealer, to_designer_id=designer_id)

        await AuthorizationService(db_session).revoke_authorization(upstream.id)

        with pytest.raises(NoApplicableAuthorizationError):
            await CommissionResolver(db_session).resolve_product(maker.id, designer_id, sofa.id)

    @pytest.mark.asyncio
    async def test_explicit_chain_with_gap_fails(self, db_session, seed):
        maker = await seed.manufacturer("XA")
        dealer = await seed.manufacturer("XB")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.grant(dealer, to_designer_id=designer_id)

        with pytest.raises(NoApplicableAuthorizationError) as exc_info:
            await CommissionResolver(db_session).resolve(
                maker.id, [maker.id, dealer.id, designer_id], ProductRef.from_product(sofa)
            )
        assert exc_info.value.details["depth"] == 0

    @pytest.mark.asyncio
    async def test_out_of_scope_product_fails_closed(self, db_session, seed):
        maker = await seed.manufacturer("SC")
        table = await seed.product(maker, category_id="table", name="Dining table")
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_designer_id=designer_id, scope="CATEGORY", categories=["sofa"])

        with pytest.raises(NoApplicableAuthorizationError):
            await CommissionResolver(db_session).resolve_product(maker.id, designer_id, table.id)

    @pytest.mark.asyncio
    async def test_unknown_actor_has_no_chain(self, db_session, seed):
        maker = await seed.manufacturer("NA")
        sofa = await seed.product(maker)

        with pytest.raises(NoApplicableAuthorizationError):
            await CommissionResolver(db_session).resolve_product(maker.id, uuid.uuid4(), sofa.id)

    @pytest.mark.asyncio
    async def test_product_from_another_catalog(self, db_session, seed):
        maker = await seed.manufacturer("PA")
        other = await seed.manufacturer("PB")
        foreign = await seed.product(other)

        with pytest.raises(NoApplicableAuthorizationError):
            await CommissionResolver(db_session).resolve_product(maker.id, maker.id, foreign.id)

    @pytest.mark.asyncio
    async def test_missing_product(self, db_session, seed):
        maker = await seed.manufacturer("MP")
        with pytest.raises(NotFoundError):
            await CommissionResolver(db_session).resolve_product(maker.id, maker.id, uuid.uuid4())


class TestDuplicateEdges:

    @pytest.mark.asyncio
    async def test_newest_duplicate_wins_and_is_logged(self, db_session, seed, caplog):
        maker = await seed.manufacturer("DU")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.raw_edge(maker, designer_id, min_discount_rate=Decimal("95"))
        newest = await seed.raw_edge(maker, designer_id, min_discount_rate=Decimal("88"))

        with caplog.at_level(logging.WARNING, logger="furnilink.services.authorization_service"):
            resolution = await CommissionResolver(db_session).resolve_product(
                maker.id, designer_id, sofa.id
            )

        assert resolution.discount_rate == Decimal("88")
        assert resolution.commission_breakdown[0].authorization_id == newest.id
        assert any("Duplicate active authorizations" in r.message for r in caplog.records)


class TestProductDiscounts:

    @pytest.mark.asyncio
    async def test_product_discount_beats_edge_discount(self, db_session, seed):
        maker = await seed.manufacturer("PD")
        sofa = await seed.product(maker)
        table = await seed.product(maker, name="Dining table")
        designer_id = uuid.uuid4()
        edge = await seed.grant(maker, to_designer_id=designer_id, min_discount_rate=85)

        updated = await AuthorizationService(db_session).set_product_discount(
            edge.id, sofa.id, Decimal("75")
        )
        assert Decimal(updated.product_discounts[str(sofa.id)]) == Decimal("75")

        resolver = CommissionResolver(db_session)
        on_sofa = await resolver.resolve_product(maker.id, designer_id, sofa.id)
        on_table = await resolver.resolve_product(maker.id, designer_id, table.id)

        assert on_sofa.discount_rate == Decimal("75")
        assert on_sofa.discount_source == RateSource.EDGE_PRODUCT
        assert on_sofa.unit_price == Decimal("750.00")
        assert on_table.discount_rate == Decimal("85")
        assert on_table.discount_source == RateSource.EDGE

    @pytest.mark.asyncio
    async def test_discount_raised_to_minimum_sale_discount(self, db_session, seed):
        maker = await seed.manufacturer("MS")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        edge = await seed.grant(maker, to_designer_id=designer_id)
        policies = TierPolicyService(db_session)
        authorizations = AuthorizationService(db_session)

        await policies.upsert_policy(maker.id, TierPolicyUpsert(min_sale_discount_rate=80))
        stored = await authorizations.set_product_discount(edge.id, sofa.id, Decimal("70"))
        assert Decimal(stored.product_discounts[str(sofa.id)]) == Decimal("80")

        # A floor raised later still applies to the stored override
        await policies.upsert_policy(maker.id, TierPolicyUpsert(min_sale_discount_rate=82))
        resolution = await CommissionResolver(db_session).resolve_product(
            maker.id, designer_id, sofa.id
        )
        assert resolution.discount_rate == Decimal("82")

    @pytest.mark.asyncio
    async def test_product_outside_scope_is_rejected(self, db_session, seed):
        maker = await seed.manufacturer("SC")
        other = await seed.manufacturer("SO")
        table = await seed.product(maker, category_id="table")
        foreign = await seed.product(other)
        edge = await seed.grant(
            maker, to_designer_id=uuid.uuid4(), scope="category", categories=["sofa"]
        )
        service = AuthorizationService(db_session)

        with pytest.raises(InvalidScopeError):
            await service.set_product_discount(edge.id, table.id, Decimal("70"))
        with pytest.raises(InvalidScopeError):
            await service.set_product_discount(edge.id, foreign.id, Decimal("70"))
        with pytest.raises(NotFoundError):
            await service.set_product_discount(edge.id, uuid.uuid4(), Decimal("70"))

    @pytest.mark.asyncio
    async def test_clear_override_and_revoked_edge(self, db_session, seed):
        maker = await seed.manufacturer("CL")
        sofa = await seed.product(maker)
        edge = await seed.grant(maker, to_designer_id=uuid.uuid4())
        service = AuthorizationService(db_session)

        await service.set_product_discount(edge.id, sofa.id, Decimal("70"))
        cleared = await service.set_product_discount(edge.id, sofa.id, None)
        assert cleared.product_discounts == {}

        await service.revoke_authorization(edge.id)
        with pytest.raises(ConflictError):
            await service.set_product_discount(edge.id, sofa.id, Decimal("70"))


class TestConsistentSnapshot:

    @pytest.fixture
    def snapshot_calls(self, monkeypatch):
        """Records whether the session had already begun when a snapshot was requested."""
        calls = []
        begin = CommissionResolver.begin_snapshot

        async def recording_begin(resolver):
            calls.append(resolver.db.in_transaction())
            await begin(resolver)

        monkeypatch.setattr(CommissionResolver, "begin_snapshot", recording_begin)
        return calls

    @pytest.mark.asyncio
    async def test_resolve_product_requests_snapshot_before_first_read(
        self, session_factory, seed, snapshot_calls
    ):
        maker = await seed.manufacturer("SN")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_designer_id=designer_id)

        async with session_factory() as session:
            await CommissionResolver(session).resolve_product(maker.id, designer_id, sofa.id)

        assert snapshot_calls[0] is False

    @pytest.mark.asyncio
    async def test_place_order_requests_snapshot_before_first_read(
        self, session_factory, seed, snapshot_calls
    ):
        maker = await seed.manufacturer("SP")
        sofa = await seed.product(maker)
        designer_id = uuid.uuid4()
        await seed.grant(maker, to_designer_id=designer_id)

        async with session_factory() as session:
            await OrderService(session).place_order(
                OrderCreate(items=[line(sofa)]), placed_by=designer(designer_id)
            )

        assert snapshot_calls[0] is False
