"""Booking (LR) header and its priced article lines."""
import uuid
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    String, DateTime, Date, ForeignKey, Integer, Text,
    Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType


class BookingStatus(str, Enum):
    BOOKED = "booked"
    LOADED = "loaded"
    IN_TRANSIT = "in_transit"
    UNLOADED = "unloaded"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class WorkflowContext(str, Enum):
    """Which operational process is driving a status change."""
    LOADING = "loading"
    UNLOADING = "unloading"
    GENERAL = "general"


class PaymentType(str, Enum):
    PAID = "paid"
    TO_PAY = "to_pay"
    TO_BE_BILLED = "to_be_billed"


class Urgency(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    URGENT = "urgent"


class RateType(str, Enum):
    PER_KG = "per_kg"
    PER_QUANTITY = "per_quantity"


class RateSource(str, Enum):
    CONTRACT_SLAB = "contract_slab"
    MANUAL = "manual"
    ARTICLE_BASE = "article_base"


class Booking(Base):
    """
    A shipment booking identified by its LR number.

    total_amount always equals the sum of the line totals; BookingService
    writes both in the same transaction. version is bumped on every header
    write and guards status changes against lost updates.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("organization_id", "lr_number", name="uq_booking_org_lr_number"),
        Index("ix_booking_org_status", "organization_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    lr_number: Mapped[str] = mapped_column(String(30), nullable=False)

    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("branches.id"),
        nullable=False,
        index=True
    )
    from_branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("branches.id"),
        nullable=True,
        index=True
    )
    to_branch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("branches.id"),
        nullable=True,
        index=True
    )

    from_location: Mapped[str] = mapped_column(String(100), nullable=False)
    to_location: Mapped[str] = mapped_column(String(100), nullable=False)

    sender_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("customers.id"),
        nullable=False
    )
    receiver_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("customers.id"),
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=BookingStatus.BOOKED.value,
        nullable=False
    )
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    urgency: Mapped[str] = mapped_column(
        String(20),
        default=Urgency.STANDARD.value,
        nullable=False
    )
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    pickup_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Milestones
    loaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    in_transit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    unloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    articles: Mapped[List["BookingArticle"]] = relationship(
        "BookingArticle",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingArticle.line_number",
    )

    @property
    def scope(self) -> dict:
        """Resource scope handed to the tenancy guard."""
        return {
            "org_id": self.organization_id,
            "branch_id": self.branch_id,
            "from_branch_id": self.from_branch_id,
            "to_branch_id": self.to_branch_id,
        }

    def __repr__(self) -> str:
        return f"<Booking(lr_number='{self.lr_number}', status='{self.status}')>"


class BookingArticle(Base):
    """
    One priced line of a booking. Every charge component is stored so the
    total can be audited without re-running the tariff.
    """
    __tablename__ = "booking_articles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1)
    article_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("articles.id", ondelete="SET NULL"),
        nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_weight: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    charged_weight: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)

    # Rate applied
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    charge_basis: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_source: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_contract_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("rate_contracts.id", ondelete="SET NULL"),
        nullable=True
    )
    rate_slab_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("rate_slabs.id", ondelete="SET NULL"),
        nullable=True
    )

    # Charge components
    freight_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    loading_charges: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    unloading_charges: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    surcharge_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    adjustment_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    declared_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="articles")

    def __repr__(self) -> str:
        return f"<BookingArticle(line={self.line_number}, total={self.total_amount})>"
