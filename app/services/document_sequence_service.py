"""
Document Sequence Service for LR number allocation

- Calendar year based numbering per origin branch
- Continuous sequence within the year
- Atomic increment with a single UPDATE, so concurrent bookings in the same
  organization never share a number
- Format: {ORIGIN}-{YY}-{SEQUENCE} (LR_NUMBER_TEMPLATE / LR_SEQUENCE_PADDING)

USAGE:
    from app.services.document_sequence_service import DocumentSequenceService

    async def create_booking(db: AsyncSession):
        service = DocumentSequenceService(db, organization_id)
        lr_number = await service.next_lr_number("MUM", date.today())
        # Returns: MUM-26-001
"""

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.document_sequence import DocumentSequence


logger = logging.getLogger(__name__)


def period_for(on_date: date) -> str:
    """Two digit year, e.g. 2026 -> '26'."""
    return f"{on_date.year % 100:02d}"


def format_lr_number(origin: str, period: str, number: int, padding: int) -> str:
    return settings.LR_NUMBER_TEMPLATE.format(
        origin=origin.upper(),
        yy=period,
        seq=str(number).zfill(padding),
    )


class DocumentSequenceService:
    """
    Service for generating LR numbers.

    The counter row is bumped with UPDATE ... SET current_number =
    current_number + 1 inside the caller's transaction. The row lock taken
    by that UPDATE is held until commit, so a rolled back booking releases
    its number and concurrent bookings queue behind each other.
    """

    def __init__(self, db: AsyncSession, organization_id: uuid.UUID):
        self.db = db
        self.organization_id = organization_id

    def _key_filter(self, sequence_key: str, period: str):
        return (
            DocumentSequence.organization_id == self.organization_id,
            DocumentSequence.sequence_key == sequence_key,
            DocumentSequence.period == period,
        )

    async def _ensure_sequence(self, sequence_key: str, period: str) -> None:
        """
        Create the counter row if it does not exist yet.

        Creation runs in a savepoint; losing the race to another creator
        raises IntegrityError, which only means the row is now there.
        """
        result = await self.db.execute(
            select(DocumentSequence.id).where(*self._key_filter(sequence_key, period))
        )
        if result.scalar_one_or_none() is not None:
            return

        try:
            async with self.db.begin_nested():
                self.db.add(DocumentSequence(
                    organization_id=self.organization_id,
                    sequence_key=sequence_key,
                    period=period,
                    current_number=0,
                    padding_length=settings.LR_SEQUENCE_PADDING,
                ))
                await self.db.flush()
            logger.info(f"Created LR sequence {sequence_key}/{period} for org {self.organization_id}")
        except IntegrityError:
            logger.info(f"LR sequence {sequence_key}/{period} created concurrently, reusing it")

    async def next_lr_number(self, origin_code: str, booking_date: date) -> str:
        """
        Allocate the next LR number for an origin branch.

        Args:
            origin_code: Origin branch code, e.g. MUM
            booking_date: Date the booking is made; selects the yearly counter

        Returns:
            Formatted LR number, e.g. MUM-26-001
        """
        sequence_key = origin_code.upper()
        period = period_for(booking_date)

        await self._ensure_sequence(sequence_key, period)

        await self.db.execute(
            update(DocumentSequence)
            .where(*self._key_filter(sequence_key, period))
            .values(current_number=DocumentSequence.current_number + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(
            select(DocumentSequence.current_number, DocumentSequence.padding_length)
            .where(*self._key_filter(sequence_key, period))
        )
        number, padding = result.one()

        return format_lr_number(sequence_key, period, number, padding)

    async def preview_next_number(self, origin_code: str, booking_date: date) -> str:
        """What the next LR number would be, without allocating it."""
        sequence_key = origin_code.upper()
        period = period_for(booking_date)

        result = await self.db.execute(
            select(DocumentSequence.current_number, DocumentSequence.padding_length)
            .where(*self._key_filter(sequence_key, period))
        )
        row = result.one_or_none()
        if row is None:
            return format_lr_number(sequence_key, period, 1, settings.LR_SEQUENCE_PADDING)
        current, padding = row
        return format_lr_number(sequence_key, period, current + 1, padding)

    async def get_current_number(self, origin_code: str, booking_date: date) -> int:
        """Last allocated number for the origin and year (0 if none)."""
        result = await self.db.execute(
            select(DocumentSequence.current_number)
            .where(*self._key_filter(origin_code.upper(), period_for(booking_date)))
        )
        current: Optional[int] = result.scalar_one_or_none()
        return current or 0
