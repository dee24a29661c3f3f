"""
Tier commission policy models.

Each manufacturer owns one policy document holding named rule sets. A
rule set maps chain depth to a commission rate and may carry
partner-specific overrides that win regardless of depth.

rules example:
    [{"depth": 0, "commission_rate": 10, "description": "direct designers"},
     {"depth": 1, "commission_rate": 4, "description": "sub-channels"}]

partner_rules example:
    [{"partner_id": "<uuid>", "partner_name": "Studio X",
      "commission_rate": 15, "description": "flagship studio"}]
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from furnilink.database import Base
from furnilink.db_types import UUIDType, JSONType


class TierPolicy(Base):
    """Per-manufacturer commission policy document."""
    __tablename__ = "tier_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    manufacturer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    role_modules: Mapped[List[dict]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        comment="Display groupings of partners, e.g. designers / franchise"
    )
    min_sale_discount_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        comment="Floor for per-product discounts, percent of list; NULL = no floor"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    rule_sets: Mapped[List["TierCommissionRuleSet"]] = relationship(
        "TierCommissionRuleSet",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="TierCommissionRuleSet.created_at",
    )

    def __repr__(self) -> str:
        return f"<TierPolicy(manufacturer='{self.manufacturer_id}')>"


class TierCommissionRuleSet(Base):
    """Named depth-indexed commission rules with partner overrides."""
    __tablename__ = "tier_commission_rule_sets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    policy_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("tier_policies.id", ondelete="CASCADE"),
        nullable=False
    )
    manufacturer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("manufacturers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    rules: Mapped[List[dict]] = mapped_column(JSONType, nullable=False, default=list)
    partner_rules: Mapped[List[dict]] = mapped_column(JSONType, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    activated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Most recently activated set wins at resolution time"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    policy: Mapped["TierPolicy"] = relationship("TierPolicy", back_populates="rule_sets")

    __table_args__ = (
        UniqueConstraint("policy_id", "name", name="uq_tier_rule_sets_policy_name"),
    )

    def __repr__(self) -> str:
        return f"<TierCommissionRuleSet(name='{self.name}', active={self.is_active})>"
