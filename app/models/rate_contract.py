"""Customer rate contracts and their route/weight slabs."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, Boolean, DateTime, Date, ForeignKey, Integer, Text,
    Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType


# ============================================
# ENUMS
# ============================================

class ContractStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class ContractType(str, Enum):
    STANDARD = "standard"
    SPECIAL = "special"
    VOLUME = "volume"
    SEASONAL = "seasonal"


class ChargeBasis(str, Enum):
    """How a slab turns weight/quantity into a base amount."""
    WEIGHT = "weight"
    UNIT = "unit"
    FIXED = "fixed"
    WHICHEVER_HIGHER = "whichever_higher"


# ============================================
# RATE CONTRACT
# ============================================

class RateContract(Base):
    """
    Negotiated pricing agreement with a customer.

    Only contracts in ACTIVE status whose validity window covers the
    booking date take part in rate resolution.
    """
    __tablename__ = "rate_contracts"
    __table_args__ = (
        UniqueConstraint("organization_id", "contract_number", name="uq_rate_contract_org_number"),
        Index("ix_rate_contract_customer_status", "customer_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("branches.id", ondelete="SET NULL"),
        nullable=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False
    )

    contract_number: Mapped[str] = mapped_column(String(50), nullable=False)
    contract_type: Mapped[str] = mapped_column(
        String(20),
        default=ContractType.STANDARD.value,
        nullable=False
    )
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False)

    # Commercial terms
    payment_terms: Mapped[int] = mapped_column(Integer, default=30, comment="Days")
    credit_limit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    base_discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        default=Decimal("0"),
        comment="Loyalty discount applied to every line priced from this contract"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=ContractStatus.DRAFT.value,
        nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Approval
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    slabs: Mapped[List["RateSlab"]] = relationship(
        "RateSlab",
        back_populates="rate_contract",
        cascade="all, delete-orphan",
        order_by="RateSlab.weight_from",
    )

    def covers(self, on_date: date) -> bool:
        """True when the contract is usable for a booking made on on_date."""
        return (
            self.status == ContractStatus.ACTIVE.value
            and self.valid_from <= on_date <= self.valid_until
        )

    def __repr__(self) -> str:
        return f"<RateContract(number='{self.contract_number}', status='{self.status}')>"


# ============================================
# RATE SLABS
# ============================================

class RateSlab(Base):
    """
    Route and weight specific rate inside a contract.

    article_id and article_category narrow the slab; both NULL makes it a
    wildcard for the route. The weight range is half-open:
    weight_from <= weight < weight_to.
    """
    __tablename__ = "rate_slabs"
    __table_args__ = (
        Index("ix_rate_slab_route", "rate_contract_id", "from_location", "to_location"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    rate_contract_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("rate_contracts.id", ondelete="CASCADE"),
        nullable=False
    )

    from_location: Mapped[str] = mapped_column(String(100), nullable=False)
    to_location: Mapped[str] = mapped_column(String(100), nullable=False)

    article_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("articles.id", ondelete="SET NULL"),
        nullable=True
    )
    article_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    weight_from: Mapped[Decimal] = mapped_column(Numeric(10, 3), default=Decimal("0"))
    weight_to: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)

    charge_basis: Mapped[str] = mapped_column(
        String(20),
        default=ChargeBasis.WEIGHT.value,
        nullable=False
    )
    rate_per_kg: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    rate_per_unit: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(14, 4),
        nullable=True,
        comment="Per unit rate, or the flat amount for the fixed basis"
    )
    minimum_charge: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    rate_contract: Mapped["RateContract"] = relationship("RateContract", back_populates="slabs")

    def __repr__(self) -> str:
        return (
            f"<RateSlab({self.from_location}->{self.to_location}, "
            f"{self.weight_from}-{self.weight_to}kg, {self.charge_basis})>"
        )
