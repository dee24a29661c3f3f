"""
Authorization Graph Service

Grants, requests, approvals and revocations of resale authorizations, and
the adjacency lookups the commission resolver walks.

The graph is kept acyclic at write time: a manufacturer may not grant to
anyone already upstream of it. Walks are breadth-first over incoming
edges with an explicit hop counter bounded by AUTHORIZATION_MAX_DEPTH.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select, or_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from furnilink.config import settings
from furnilink.core.errors import (
    AuthorizationConflictError,
    ConflictError,
    InvalidScopeError,
    InvalidTransitionError,
    NotFoundError,
)
from furnilink.models.authorization import (
    AuthorizationEdge,
    AuthorizationStatus,
    AuthorizationType,
    as_utc,
)
from furnilink.models.manufacturer import Manufacturer, Product
from furnilink.models.tier_policy import TierCommissionRuleSet
from furnilink.schemas.authorization import (
    AuthorizationApprove,
    AuthorizationCreate,
    AuthorizationPricingUpdate,
    AuthorizationRequestCreate,
)
from furnilink.services.scope_evaluator import ProductRef, covers, validate_scope
from furnilink.services.tier_policy_service import TierPolicyService

logger = logging.getLogger(__name__)


# Statuses that still block a second grant for the same pair
OPEN_STATUSES = (
    AuthorizationStatus.PENDING.value,
    AuthorizationStatus.ACTIVE.value,
    AuthorizationStatus.SUSPENDED.value,
)

EDGE_TRANSITIONS: Dict[str, List[str]] = {
    AuthorizationStatus.PENDING.value: [
        AuthorizationStatus.ACTIVE.value,
        AuthorizationStatus.REVOKED.value,
    ],
    AuthorizationStatus.ACTIVE.value: [
        AuthorizationStatus.SUSPENDED.value,
        AuthorizationStatus.REVOKED.value,
    ],
    AuthorizationStatus.SUSPENDED.value: [
        AuthorizationStatus.ACTIVE.value,
        AuthorizationStatus.REVOKED.value,
    ],
    AuthorizationStatus.REVOKED.value: [],
    AuthorizationStatus.EXPIRED.value: [],
}


def _grantee_filter(grantee_ids: Iterable[uuid.UUID]):
    ids = list(grantee_ids)
    return or_(
        AuthorizationEdge.to_manufacturer_id.in_(ids),
        AuthorizationEdge.to_designer_id.in_(ids),
    )


def _newest_first(edges: Iterable[AuthorizationEdge]) -> List[AuthorizationEdge]:
    return sorted(edges, key=lambda e: as_utc(e.created_at), reverse=True)


def _invalid_edge_transition(edge: AuthorizationEdge, target: str) -> InvalidTransitionError:
    return InvalidTransitionError(
        edge.status, target, EDGE_TRANSITIONS.get(edge.status, []), entity="Authorization"
    )


class AuthorizationService:
    """Service for authorization edges"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    async def get_authorization(self, edge_id: uuid.UUID) -> AuthorizationEdge:
        edge = await self.db.get(AuthorizationEdge, edge_id)
        if not edge:
            raise NotFoundError("Authorization", edge_id)
        return edge

    async def list_authorizations(
        self,
        node_id: uuid.UUID,
        direction: str = "received",
        status: Optional[str] = None,
    ) -> List[AuthorizationEdge]:
        """Edges granted by, or received by, one manufacturer or designer."""
        query = select(AuthorizationEdge)
        if direction == "granted":
            query = query.where(AuthorizationEdge.from_manufacturer_id == node_id)
        else:
            query = query.where(_grantee_filter([node_id]))
        query = query.order_by(AuthorizationEdge.created_at.desc())

        result = await self.db.execute(query)
        edges = list(result.scalars().all())
        if status:
            edges = [e for e in edges if e.effective_status == status]
        return edges

    async def get_tier_hierarchy(self, node_id: uuid.UUID) -> List[Dict]:
        """
        Received edges of a node, each with its parent edge (what the
        grantor itself received) and the node's own grants made under it.
        """
        result = await self.db.execute(
            select(AuthorizationEdge)
            .options(selectinload(AuthorizationEdge.parent))
            .where(
                _grantee_filter([node_id]),
                AuthorizationEdge.status != AuthorizationStatus.REVOKED.value,
            )
            .order_by(AuthorizationEdge.tier_level, AuthorizationEdge.created_at)
        )
        received = list(result.scalars().all())

        children_by_parent: Dict[uuid.UUID, List[AuthorizationEdge]] = defaultdict(list)
        if received:
            child_result = await self.db.execute(
                select(AuthorizationEdge).where(
                    AuthorizationEdge.from_manufacturer_id == node_id,
                    AuthorizationEdge.parent_authorization_id.in_([e.id for e in received]),
                    AuthorizationEdge.status != AuthorizationStatus.REVOKED.value,
                )
            )
            for child in child_result.scalars().all():
                children_by_parent[child.parent_authorization_id].append(child)

        return [
            {
                "authorization": edge,
                "parent": edge.parent,
                "children": children_by_parent.get(edge.id, []),
            }
            for edge in received
        ]

    # ========================================================================
    # Graph lookups used by the resolver
    # ========================================================================

    async def valid_incoming_edges(
        self, grantee_ids: Iterable[uuid.UUID]
    ) -> List[AuthorizationEdge]:
        """Active, started, unexpired edges pointing at any of the grantees."""
        ids = list(grantee_ids)
        if not ids:
            return []
        result = await self.db.execute(
            select(AuthorizationEdge).where(
                _grantee_filter(ids),
                AuthorizationEdge.status == AuthorizationStatus.ACTIVE.value,
            )
        )
        return [e for e in result.scalars().all() if e.is_valid]

    async def select_edge(
        self, grantor_id: uuid.UUID, grantee_id: uuid.UUID
    ) -> Optional[AuthorizationEdge]:
        """
        The edge that governs one hop.

        Duplicate active edges for a pair are a data-quality problem; the
        most recently created one wins and the duplicates are logged.
        """
        result = await self.db.execute(
            select(AuthorizationEdge).where(
                AuthorizationEdge.from_manufacturer_id == grantor_id,
                _grantee_filter([grantee_id]),
                AuthorizationEdge.status == AuthorizationStatus.ACTIVE.value,
            )
        )
        edges = _newest_first(e for e in result.scalars().all() if e.is_valid)
        if not edges:
            return None
        if len(edges) > 1:
            logger.warning(
                f"Duplicate active authorizations {grantor_id} -> {grantee_id}: "
                f"using {edges[0].id}, ignoring {', '.join(str(e.id) for e in edges[1:])}"
            )
        return edges[0]

    async def find_chains(
        self,
        manufacturer_id: uuid.UUID,
        actor_id: uuid.UUID,
        max_depth: Optional[int] = None,
    ) -> List[List[uuid.UUID]]:
        """
        All authorization paths from a manufacturer down to an actor,
        shortest first, as [manufacturer, ..., actor].

        Walks upward from the actor one hop per iteration.
        """
        if actor_id == manufacturer_id:
            return [[manufacturer_id]]

        max_depth = max_depth or settings.AUTHORIZATION_MAX_DEPTH
        chains: List[List[uuid.UUID]] = []
        frontier: List[List[uuid.UUID]] = [[actor_id]]
        hops = 0

        while frontier and hops < max_depth:
            hops += 1
            edges = await self.valid_incoming_edges({path[-1] for path in frontier})
            grantors_of: Dict[uuid.UUID, Set[uuid.UUID]] = defaultdict(set)
            for edge in edges:
                grantors_of[edge.grantee_id].add(edge.from_manufacturer_id)

            next_frontier = []
            for path in frontier:
                for grantor_id in sorted(grantors_of.get(path[-1], ()), key=str):
                    if grantor_id in path:
                        continue
                    upward = path + [grantor_id]
                    if grantor_id == manufacturer_id:
                        chains.append(list(reversed(upward)))
                    else:
                        next_frontier.append(upward)
            frontier = next_frontier

        logger.debug(
            f"Found {len(chains)} authorization chain(s) {manufacturer_id} -> {actor_id}"
        )
        return chains

    async def is_upstream(self, candidate_id: uuid.UUID, node_id: uuid.UUID) -> bool:
        """True if candidate already reaches node through open edges."""
        visited: Set[uuid.UUID] = {node_id}
        frontier = {node_id}
        while frontier:
            result = await self.db.execute(
                select(AuthorizationEdge.from_manufacturer_id).where(
                    AuthorizationEdge.to_manufacturer_id.in_(list(frontier)),
                    AuthorizationEdge.status.in_(OPEN_STATUSES),
                )
            )
            grantors = set(result.scalars().all())
            if candidate_id in grantors:
                return True
            frontier = grantors - visited
            visited |= frontier
        return False

    async def _parent_edge(self, grantor_id: uuid.UUID) -> Optional[AuthorizationEdge]:
        """The newest valid edge the grantor itself received, if any."""
        result = await self.db.execute(
            select(AuthorizationEdge).where(
                AuthorizationEdge.to_manufacturer_id == grantor_id,
                AuthorizationEdge.status == AuthorizationStatus.ACTIVE.value,
            )
        )
        edges = _newest_first(e for e in result.scalars().all() if e.is_valid)
        return edges[0] if edges else None

    # ========================================================================
    # Validation helpers
    # ========================================================================

    async def _require_manufacturer(self, manufacturer_id: uuid.UUID) -> Manufacturer:
        manufacturer = await self.db.get(Manufacturer, manufacturer_id)
        if not manufacturer:
            raise NotFoundError("Manufacturer", manufacturer_id)
        return manufacturer

    async def _check_open_pair(
        self,
        grantor_id: uuid.UUID,
        grantee_id: uuid.UUID,
        exclude_id: Optional[uuid.UUID] = None,
        statuses=OPEN_STATUSES,
    ) -> None:
        query = select(AuthorizationEdge.id).where(
            AuthorizationEdge.from_manufacturer_id == grantor_id,
            _grantee_filter([grantee_id]),
            AuthorizationEdge.status.in_(statuses),
        )
        if exclude_id:
            query = query.where(AuthorizationEdge.id != exclude_id)
        existing = (await self.db.execute(query.limit(1))).scalar_one_or_none()
        if existing:
            raise AuthorizationConflictError(
                "An authorization for this grantor and grantee already exists",
                {"existing_id": str(existing)},
            )

    async def _check_no_cycle(self, grantor_id: uuid.UUID, grantee_id: uuid.UUID) -> None:
        if grantor_id == grantee_id:
            raise AuthorizationConflictError("A manufacturer cannot authorize itself")
        if await self.is_upstream(grantee_id, grantor_id):
            raise AuthorizationConflictError(
                "Grant would create a cycle: grantee is already upstream of the grantor",
                {"grantor_id": str(grantor_id), "grantee_id": str(grantee_id)},
            )

    async def _check_rule_sets(
        self, grantor_id: uuid.UUID, rule_set_ids: Iterable[uuid.UUID]
    ) -> List[str]:
        ids = list(dict.fromkeys(rule_set_ids))
        if not ids:
            return []
        result = await self.db.execute(
            select(TierCommissionRuleSet.id).where(
                TierCommissionRuleSet.id.in_(ids),
                TierCommissionRuleSet.manufacturer_id == grantor_id,
            )
        )
        found = set(result.scalars().all())
        for rule_set_id in ids:
            if rule_set_id not in found:
                raise NotFoundError("TierCommissionRuleSet", rule_set_id)
        return [str(i) for i in ids]

    # ========================================================================
    # Writes
    # ========================================================================

    async def grant_authorization(
        self,
        data: AuthorizationCreate,
        grantor_id: uuid.UUID,
        created_by: Optional[uuid.UUID] = None,
    ) -> AuthorizationEdge:
        """Create an ACTIVE edge from a manufacturer to a manufacturer or designer."""
        await self._require_manufacturer(grantor_id)
        scope, categories, products = validate_scope(data.scope, data.categories, data.products)

        if data.to_manufacturer_id:
            await self._require_manufacturer(data.to_manufacturer_id)
            await self._check_no_cycle(grantor_id, data.to_manufacturer_id)
            grantee_id = data.to_manufacturer_id
            auth_type = AuthorizationType.MANUFACTURER.value
        else:
            grantee_id = data.to_designer_id
            auth_type = AuthorizationType.DESIGNER.value

        await self._check_open_pair(grantor_id, grantee_id)
        rule_set_ids = await self._check_rule_sets(grantor_id, data.tier_rule_set_ids)

        parent = await self._parent_edge(grantor_id)
        edge = AuthorizationEdge(
            from_manufacturer_id=grantor_id,
            to_manufacturer_id=data.to_manufacturer_id,
            to_designer_id=data.to_designer_id,
            authorization_type=auth_type,
            scope=scope,
            categories=categories,
            products=products,
            min_discount_rate=data.min_discount_rate,
            commission_rate=data.commission_rate,
            tier_rule_set_ids=rule_set_ids,
            status=AuthorizationStatus.ACTIVE.value,
            is_enabled=True,
            valid_from=data.valid_from or datetime.now(timezone.utc),
            valid_until=data.valid_until,
            parent_authorization_id=parent.id if parent else None,
            tier_level=(parent.tier_level + 1) if parent else 0,
            notes=data.notes,
            created_by=created_by,
        )
        self.db.add(edge)
        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(
            f"Authorization granted {grantor_id} -> {grantee_id} "
            f"(scope={scope}, tier_level={edge.tier_level})"
        )
        return edge

    async def request_authorization(
        self, data: AuthorizationRequestCreate, designer_id: uuid.UUID
    ) -> AuthorizationEdge:
        """Designer-initiated request; stays PENDING until the manufacturer approves."""
        await self._require_manufacturer(data.manufacturer_id)
        scope, categories, products = validate_scope(data.scope, data.categories, data.products)
        await self._check_open_pair(data.manufacturer_id, designer_id)

        edge = AuthorizationEdge(
            from_manufacturer_id=data.manufacturer_id,
            to_designer_id=designer_id,
            authorization_type=AuthorizationType.DESIGNER.value,
            scope=scope,
            categories=categories,
            products=products,
            tier_rule_set_ids=[],
            status=AuthorizationStatus.PENDING.value,
            is_enabled=False,
            notes=data.notes,
            created_by=designer_id,
        )
        self.db.add(edge)
        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization requested by designer {designer_id} from {data.manufacturer_id}")
        return edge

    async def approve_authorization(
        self, edge_id: uuid.UUID, data: AuthorizationApprove
    ) -> AuthorizationEdge:
        edge = await self.get_authorization(edge_id)
        if edge.status != AuthorizationStatus.PENDING.value:
            raise _invalid_edge_transition(edge, AuthorizationStatus.ACTIVE.value)

        terms = data.model_dump(exclude_unset=True)
        if "scope" in terms and data.scope is not None:
            scope, categories, products = validate_scope(
                data.scope,
                data.categories if data.categories is not None else edge.categories,
                data.products if data.products is not None else edge.products,
            )
            edge.scope, edge.categories, edge.products = scope, categories, products
        if "min_discount_rate" in terms:
            edge.min_discount_rate = data.min_discount_rate
        if "commission_rate" in terms:
            edge.commission_rate = data.commission_rate
        if data.tier_rule_set_ids is not None:
            edge.tier_rule_set_ids = await self._check_rule_sets(
                edge.from_manufacturer_id, data.tier_rule_set_ids
            )
        if "valid_until" in terms:
            edge.valid_until = data.valid_until
        if data.notes:
            edge.notes = data.notes

        await self._check_open_pair(
            edge.from_manufacturer_id,
            edge.grantee_id,
            exclude_id=edge.id,
            statuses=(AuthorizationStatus.ACTIVE.value, AuthorizationStatus.SUSPENDED.value),
        )
        parent = await self._parent_edge(edge.from_manufacturer_id)
        edge.parent_authorization_id = parent.id if parent else None
        edge.tier_level = (parent.tier_level + 1) if parent else 0
        edge.status = AuthorizationStatus.ACTIVE.value
        edge.is_enabled = True
        edge.valid_from = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization {edge.id} approved")
        return edge

    async def reject_authorization(
        self, edge_id: uuid.UUID, reason: Optional[str] = None
    ) -> AuthorizationEdge:
        edge = await self.get_authorization(edge_id)
        if edge.status != AuthorizationStatus.PENDING.value:
            raise _invalid_edge_transition(edge, AuthorizationStatus.REVOKED.value)
        edge.status = AuthorizationStatus.REVOKED.value
        edge.revoked_at = datetime.now(timezone.utc)
        if reason:
            edge.notes = f"{edge.notes}\n{reason}" if edge.notes else reason

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization request {edge.id} rejected")
        return edge

    async def revoke_authorization(self, edge_id: uuid.UUID) -> AuthorizationEdge:
        """Soft revoke. The row stays for historical orders."""
        edge = await self.get_authorization(edge_id)
        if edge.status == AuthorizationStatus.REVOKED.value:
            raise _invalid_edge_transition(edge, AuthorizationStatus.REVOKED.value)
        edge.status = AuthorizationStatus.REVOKED.value
        edge.is_enabled = False
        edge.revoked_at = datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization {edge.id} revoked")
        return edge

    async def set_active(self, edge_id: uuid.UUID, is_active: bool) -> AuthorizationEdge:
        """Suspend or resume cooperation."""
        edge = await self.get_authorization(edge_id)

        if is_active:
            source, target = AuthorizationStatus.SUSPENDED.value, AuthorizationStatus.ACTIVE.value
        else:
            source, target = AuthorizationStatus.ACTIVE.value, AuthorizationStatus.SUSPENDED.value
        if edge.status != source:
            raise _invalid_edge_transition(edge, target)

        if is_active and edge.to_manufacturer_id:
            await self._check_no_cycle(edge.from_manufacturer_id, edge.to_manufacturer_id)
        edge.status = target

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization {edge.id} {'resumed' if is_active else 'suspended'}")
        return edge

    async def set_enabled(self, edge_id: uuid.UUID, is_enabled: bool) -> AuthorizationEdge:
        """Grantee-side shop visibility toggle; resolution ignores it."""
        edge = await self.get_authorization(edge_id)
        edge.is_enabled = is_enabled
        await self.db.commit()
        await self.db.refresh(edge)
        return edge

    async def update_pricing(
        self, edge_id: uuid.UUID, data: AuthorizationPricingUpdate
    ) -> AuthorizationEdge:
        """
        Grantor-side rate edits. Only future resolutions see the change;
        placed orders carry their own frozen prices.
        """
        edge = await self.get_authorization(edge_id)
        changes = data.model_dump(exclude_unset=True)

        if "min_discount_rate" in changes:
            edge.min_discount_rate = data.min_discount_rate
        if "commission_rate" in changes:
            edge.commission_rate = data.commission_rate
        if "tier_rule_set_ids" in changes:
            edge.tier_rule_set_ids = await self._check_rule_sets(
                edge.from_manufacturer_id, data.tier_rule_set_ids or []
            )

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization {edge.id} pricing updated: {', '.join(sorted(changes))}")
        return edge

    async def set_product_discount(
        self,
        edge_id: uuid.UUID,
        product_id: uuid.UUID,
        discount_rate: Optional[Decimal],
    ) -> AuthorizationEdge:
        """
        Grantor sets a discount rate for one product on this edge.

        The product must belong to the grantor and sit inside the edge's
        scope. A rate below the grantor's minimum sale discount is raised
        to that floor. None removes the override.
        """
        edge = await self.get_authorization(edge_id)
        if edge.status == AuthorizationStatus.REVOKED.value:
            raise ConflictError(
                f"Authorization {edge.id} is revoked", {"status": edge.status}
            )

        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product", product_id)
        ref = ProductRef.from_product(product)
        if product.manufacturer_id != edge.from_manufacturer_id:
            raise InvalidScopeError(
                f"Product {ref.product_id} is not in the grantor's catalog",
                {"product_id": ref.product_id, "from_manufacturer_id": str(edge.from_manufacturer_id)},
            )
        if not covers(edge, ref):
            raise InvalidScopeError(
                f"Product {ref.product_id} is outside authorization {edge.id}'s scope",
                {"product_id": ref.product_id, "scope": edge.scope},
            )

        discounts = dict(edge.product_discounts or {})
        if discount_rate is None:
            discounts.pop(ref.product_id, None)
        else:
            floor = await TierPolicyService(self.db).min_sale_discount_rate(edge.from_manufacturer_id)
            if floor is not None and discount_rate < floor:
                logger.info(
                    f"Discount {discount_rate} for product {ref.product_id} raised to "
                    f"minimum sale discount {floor}"
                )
                discount_rate = floor
            discounts[ref.product_id] = str(discount_rate)
        edge.product_discounts = discounts

        await self.db.commit()
        await self.db.refresh(edge)

        logger.info(f"Authorization {edge.id} product discount for {ref.product_id}: {discount_rate}")
        return edge
