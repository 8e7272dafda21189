"""
Document Sequence Model for LR number allocation

FORMAT:
━━━━━━━
• {ORIGIN}-{YY}-{SEQUENCE}, e.g. MUM-26-007
• One counter per (organization, origin branch code, calendar year)
• Continuous sequence within the year

USAGE:
━━━━━━
    from app.services.document_sequence_service import DocumentSequenceService

    async def create_booking(db):
        service = DocumentSequenceService(db, organization_id)
        lr_number = await service.next_lr_number("MUM", booking_date)
        # Returns: MUM-26-001
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class DocumentSequence(Base):
    """
    Counter row for LR number generation.

    Example:
        sequence_key = "MUM"
        period = "26"
        current_number = 42
        → Next LR number: MUM-26-043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "sequence_key", "period",
            name="uq_document_sequence_org_key_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False
    )

    sequence_key: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Origin branch code"
    )
    period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="Two digit year, e.g. 26"
    )

    # Sequence Counter
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=3,
        comment="Zero padding for sequence (3 = 001)"
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

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.sequence_key}/{self.period}: {self.current_number})>"
