"""
Commission & Discount Resolver

Turns an authorization chain (manufacturer -> ... -> actor) into one
effective discount rate and a per-hop commission split.

Precedence for each hop's commission rate:
    1. partner rule naming the hop's grantee
    2. depth rule matching the hop's distance from the manufacturer
    3. the edge's own commission_rate
    4. the manufacturer's default_commission_rate

The discount comes from the terminal edge: its per-product discount
(raised to the tier policy's minimum sale discount), else its
min_discount_rate, else the manufacturer's default_discount_rate.
Discount rates are the percent of list price the buyer pays. Override
values of NULL or 0 both mean "unset".

Every hop must have a valid edge whose scope covers the product. A gap
fails the whole resolution; there is no partial chain and no fallback to
list price.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.core.errors import (
    NoApplicableAuthorizationError,
    NotFoundError,
)
from furnilink.models.authorization import AuthorizationEdge
from furnilink.models.manufacturer import Manufacturer, Product
from furnilink.models.tier_policy import TierCommissionRuleSet
from furnilink.services.authorization_service import AuthorizationService
from furnilink.services.scope_evaluator import ProductRef, covers
from furnilink.services.tier_policy_service import TierPolicyService

logger = logging.getLogger(__name__)


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


class RateSource:
    """Where a resolved rate came from."""
    PARTNER_RULE = "PARTNER_RULE"
    DEPTH_RULE = "DEPTH_RULE"
    EDGE_PRODUCT = "EDGE_PRODUCT"
    EDGE = "EDGE"
    MANUFACTURER_DEFAULT = "MANUFACTURER_DEFAULT"
    OWNER = "OWNER"


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def override_rate(value: Any) -> Optional[Decimal]:
    """Edge-level override, with legacy zero (or blank) treated as unset."""
    if isinstance(value, str) and not value.strip():
        return None
    rate = to_decimal(value)
    if rate is None or rate == 0:
        return None
    return rate


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class CommissionHop:
    """Commission owed to one grantee in the chain."""
    depth: int
    grantor_id: uuid.UUID
    actor_id: uuid.UUID
    authorization_id: uuid.UUID
    commission_rate: Decimal
    source: str
    rule_set_id: Optional[uuid.UUID] = None
    commission_amount: Optional[Decimal] = None

    def snapshot(self) -> dict:
        """JSON-safe copy frozen onto order lines."""
        return {
            "depth": self.depth,
            "grantor_id": str(self.grantor_id),
            "actor_id": str(self.actor_id),
            "authorization_id": str(self.authorization_id),
            "commission_rate": str(self.commission_rate),
            "source": self.source,
            "rule_set_id": str(self.rule_set_id) if self.rule_set_id else None,
            "commission_amount": (
                str(self.commission_amount) if self.commission_amount is not None else None
            ),
        }


@dataclass
class RateResolution:
    manufacturer_id: uuid.UUID
    actor_id: uuid.UUID
    product_id: str
    chain: List[uuid.UUID]
    is_owner: bool
    discount_rate: Decimal
    discount_source: str
    rule_set_id: Optional[uuid.UUID] = None
    commission_breakdown: List[CommissionHop] = field(default_factory=list)
    list_price: Optional[Decimal] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    manufacturer_margin: Optional[Decimal] = None

    def apply_price(self, list_price: Any, quantity: int = 1) -> "RateResolution":
        """
        Price a line: unit price from the discount, commission per hop
        against the line subtotal, remainder to the manufacturer.
        """
        self.list_price = money(to_decimal(list_price))
        self.quantity = quantity
        self.unit_price = money(self.list_price * self.discount_rate / HUNDRED)
        self.subtotal = money(self.unit_price * quantity)
        paid_out = Decimal("0")
        for hop in self.commission_breakdown:
            hop.commission_amount = money(self.subtotal * hop.commission_rate / HUNDRED)
            paid_out += hop.commission_amount
        # Rates are independent per hop and never normalised; may go negative
        self.manufacturer_margin = self.subtotal - paid_out
        return self


def _rule_for_depth(rule_set: Optional[TierCommissionRuleSet], depth: int) -> Optional[dict]:
    if not rule_set:
        return None
    for rule in rule_set.rules or []:
        if int(rule.get("depth", -1)) == depth:
            return rule
    return None


def _rule_for_partner(
    rule_set: Optional[TierCommissionRuleSet], partner_id: uuid.UUID
) -> Optional[dict]:
    if not rule_set:
        return None
    wanted = str(partner_id).lower()
    for rule in rule_set.partner_rules or []:
        if str(rule.get("partner_id", "")).lower() == wanted:
            return rule
    return None


def pick_commission_rate(
    depth: int,
    grantee_id: uuid.UUID,
    edge: AuthorizationEdge,
    manufacturer: Manufacturer,
    rule_set: Optional[TierCommissionRuleSet],
):
    """Returns (rate, source, matched rule or None) for one hop."""
    partner_rule = _rule_for_partner(rule_set, grantee_id)
    if partner_rule is not None:
        return to_decimal(partner_rule["commission_rate"]), RateSource.PARTNER_RULE, partner_rule

    depth_rule = _rule_for_depth(rule_set, depth)
    if depth_rule is not None:
        return to_decimal(depth_rule["commission_rate"]), RateSource.DEPTH_RULE, depth_rule

    edge_rate = override_rate(edge.commission_rate)
    if edge_rate is not None:
        return edge_rate, RateSource.EDGE, None

    default = to_decimal(manufacturer.default_commission_rate) or Decimal("0")
    return default, RateSource.MANUFACTURER_DEFAULT, None


class CommissionResolver:
    """Resolves effective discount and commission for (actor, product)."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.authorizations = AuthorizationService(db)
        self.tier_policies = TierPolicyService(db)

    async def begin_snapshot(self) -> None:
        """
        Read every edge, rule set and default from one snapshot.

        Must run before the session's first query: the isolation level
        can only be set on a transaction that has not begun. PostgreSQL
        gets REPEATABLE READ; SQLite transactions are already
        serializable.
        """
        if self.db.in_transaction():
            return
        if self.db.get_bind().dialect.name == "postgresql":
            await self.db.connection(execution_options={"isolation_level": "REPEATABLE READ"})

    async def _manufacturer(self, manufacturer_id: uuid.UUID) -> Manufacturer:
        manufacturer = await self.db.get(Manufacturer, manufacturer_id)
        if not manufacturer:
            raise NotFoundError("Manufacturer", manufacturer_id)
        return manufacturer

    async def resolve(
        self,
        manufacturer_id: uuid.UUID,
        actor_chain: Sequence[uuid.UUID],
        product: ProductRef,
    ) -> RateResolution:
        """
        Resolve along an explicit chain [manufacturer, ..., actor].

        A chain of length 0 or 1 means the actor is the manufacturer:
        list price, no commission. The discount rate is the percent of
        list paid, so "no discount" is 100.
        """
        manufacturer = await self._manufacturer(manufacturer_id)
        chain = list(actor_chain)

        if len(chain) <= 1:
            return RateResolution(
                manufacturer_id=manufacturer_id,
                actor_id=chain[0] if chain else manufacturer_id,
                product_id=product.product_id,
                chain=chain or [manufacturer_id],
                is_owner=True,
                discount_rate=HUNDRED,
                discount_source=RateSource.OWNER,
            )

        if chain[0] != manufacturer_id:
            raise NoApplicableAuthorizationError(
                "Authorization chain does not start at the manufacturer",
                {"manufacturer_id": str(manufacturer_id), "chain_root": str(chain[0])},
            )

        edges: List[AuthorizationEdge] = []
        for depth in range(len(chain) - 1):
            grantor_id, grantee_id = chain[depth], chain[depth + 1]
            edge = await self.authorizations.select_edge(grantor_id, grantee_id)
            if edge is None:
                raise NoApplicableAuthorizationError(
                    f"No active authorization from {grantor_id} to {grantee_id}",
                    {"depth": depth, "grantor_id": str(grantor_id), "grantee_id": str(grantee_id)},
                )
            if not covers(edge, product):
                raise NoApplicableAuthorizationError(
                    f"Authorization {edge.id} does not cover product {product.product_id}",
                    {"depth": depth, "authorization_id": str(edge.id), "product_id": product.product_id},
                )
            edges.append(edge)

        terminal = edges[-1]
        discount = override_rate((terminal.product_discounts or {}).get(product.product_id))
        discount_source = RateSource.EDGE_PRODUCT
        if discount is not None:
            floor = await self.tier_policies.min_sale_discount_rate(manufacturer_id)
            if floor is not None and discount < floor:
                discount = floor
        else:
            discount = override_rate(terminal.min_discount_rate)
            discount_source = RateSource.EDGE
        if discount is None:
            discount = to_decimal(manufacturer.default_discount_rate)
            discount_source = RateSource.MANUFACTURER_DEFAULT

        rule_set = await self.tier_policies.effective_rule_set(
            manufacturer_id, edges[0].tier_rule_set_ids or []
        )

        hops = []
        for depth, edge in enumerate(edges):
            grantee_id = chain[depth + 1]
            rate, source, _ = pick_commission_rate(depth, grantee_id, edge, manufacturer, rule_set)
            hops.append(
                CommissionHop(
                    depth=depth,
                    grantor_id=chain[depth],
                    actor_id=grantee_id,
                    authorization_id=edge.id,
                    commission_rate=rate,
                    source=source,
                    rule_set_id=rule_set.id if source in (
                        RateSource.PARTNER_RULE, RateSource.DEPTH_RULE
                    ) else None,
                )
            )

        logger.debug(
            f"Resolved {product.product_id} for {chain[-1]}: discount {discount} ({discount_source}), "
            f"commission {[(str(h.actor_id), str(h.commission_rate), h.source) for h in hops]}"
        )
        return RateResolution(
            manufacturer_id=manufacturer_id,
            actor_id=chain[-1],
            product_id=product.product_id,
            chain=chain,
            is_owner=False,
            discount_rate=discount,
            discount_source=discount_source,
            rule_set_id=rule_set.id if rule_set else None,
            commission_breakdown=hops,
        )

    async def resolve_for_actor(
        self,
        manufacturer_id: uuid.UUID,
        actor_id: uuid.UUID,
        product: ProductRef,
    ) -> RateResolution:
        """
        Discover the chain, then resolve. Candidate chains are tried
        shortest first; the first one that covers the product wins.
        """
        await self.begin_snapshot()

        chains = await self.authorizations.find_chains(manufacturer_id, actor_id)
        if not chains:
            raise NoApplicableAuthorizationError(
                f"No authorization chain from {manufacturer_id} to {actor_id}",
                {"manufacturer_id": str(manufacturer_id), "actor_id": str(actor_id)},
            )

        first_error = None
        for chain in chains:
            try:
                return await self.resolve(manufacturer_id, chain, product)
            except NoApplicableAuthorizationError as e:
                first_error = first_error or e
        raise first_error

    async def resolve_product(
        self,
        manufacturer_id: uuid.UUID,
        actor_id: uuid.UUID,
        product_id: uuid.UUID,
        list_price: Any = None,
        quantity: int = 1,
    ) -> RateResolution:
        """Catalog entry point: load the product, resolve, optionally price."""
        await self.begin_snapshot()
        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        if product.manufacturer_id != manufacturer_id:
            raise NoApplicableAuthorizationError(
                f"Product {product_id} is not in manufacturer {manufacturer_id}'s catalog",
                {"product_manufacturer_id": str(product.manufacturer_id) if product.manufacturer_id else None},
            )

        resolution = await self.resolve_for_actor(
            manufacturer_id, actor_id, ProductRef.from_product(product)
        )
        price = list_price if list_price is not None else product.base_price
        if price is not None:
            resolution.apply_price(price, quantity)
        return resolution

    async def effective_tier_rule(
        self, manufacturer_id: uuid.UUID, actor_id: uuid.UUID
    ) -> dict:
        """
        Which commission rule applies to an actor, independent of any
        product. Uses the shortest chain to place the actor at a depth.
        """
        manufacturer = await self._manufacturer(manufacturer_id)
        chains = await self.authorizations.find_chains(manufacturer_id, actor_id)
        if not chains or len(chains[0]) < 2:
            rule_set = await self.tier_policies.effective_rule_set(manufacturer_id)
            partner_rule = _rule_for_partner(rule_set, actor_id)
            if partner_rule is not None:
                return {
                    "manufacturer_id": manufacturer_id,
                    "actor_id": actor_id,
                    "depth": None,
                    "rule_set_id": rule_set.id,
                    "rule_set_name": rule_set.name,
                    "source": RateSource.PARTNER_RULE,
                    "commission_rate": to_decimal(partner_rule["commission_rate"]),
                    "rule": partner_rule,
                }
            return {
                "manufacturer_id": manufacturer_id,
                "actor_id": actor_id,
                "depth": None,
                "rule_set_id": rule_set.id if rule_set else None,
                "rule_set_name": rule_set.name if rule_set else None,
                "source": RateSource.MANUFACTURER_DEFAULT,
                "commission_rate": to_decimal(manufacturer.default_commission_rate),
                "rule": None,
            }

        chain = chains[0]
        depth = len(chain) - 2
        edge = await self.authorizations.select_edge(chain[-2], chain[-1])
        first_edge = edge if depth == 0 else await self.authorizations.select_edge(chain[0], chain[1])
        rule_set = await self.tier_policies.effective_rule_set(
            manufacturer_id, (first_edge.tier_rule_set_ids or []) if first_edge else []
        )
        rate, source, rule = pick_commission_rate(depth, actor_id, edge, manufacturer, rule_set)
        return {
            "manufacturer_id": manufacturer_id,
            "actor_id": actor_id,
            "depth": depth,
            "rule_set_id": rule_set.id if rule_set else None,
            "rule_set_name": rule_set.name if rule_set else None,
            "source": source,
            "commission_rate": rate,
            "rule": rule,
        }
