import asyncio
import re
from datetime import date

from app.database import async_session_factory, get_db_session
from app.services.document_sequence_service import (
    DocumentSequenceService,
    format_lr_number,
    period_for,
)


def test_period_is_two_digit_year():
    assert period_for(date(2026, 1, 5)) == "26"
    assert period_for(date(2105, 12, 31)) == "05"


def test_lr_number_format():
    assert format_lr_number("mum", "26", 7, 3) == "MUM-26-007"
    assert format_lr_number("DEL", "26", 1234, 3) == "DEL-26-1234"


class TestDocumentSequenceService:

    async def test_sequential_allocation(self, seed):
        on = date(2026, 3, 1)
        async with async_session_factory() as session:
            service = DocumentSequenceService(session, seed.acme.id)

            assert await service.preview_next_number("MUM", on) == "MUM-26-001"
            assert await service.get_current_number("MUM", on) == 0

            assert await service.next_lr_number("MUM", on) == "MUM-26-001"
            assert await service.next_lr_number("mum", on) == "MUM-26-002"

            # Preview does not allocate
            assert await service.preview_next_number("MUM", on) == "MUM-26-003"
            assert await service.get_current_number("MUM", on) == 2
            assert await service.next_lr_number("MUM", on) == "MUM-26-003"

    async def test_counters_are_per_origin_year_and_org(self, seed):
        async with async_session_factory() as session:
            acme = DocumentSequenceService(session, seed.acme.id)
            beta = DocumentSequenceService(session, seed.beta.id)

            assert await acme.next_lr_number("MUM", date(2026, 5, 1)) == "MUM-26-001"
            assert await acme.next_lr_number("DEL", date(2026, 5, 1)) == "DEL-26-001"
            assert await acme.next_lr_number("MUM", date(2027, 1, 2)) == "MUM-27-001"
            assert await beta.next_lr_number("MUM", date(2026, 5, 1)) == "MUM-26-001"
            assert await acme.next_lr_number("MUM", date(2026, 12, 31)) == "MUM-26-002"

    async def test_rolled_back_allocation_is_released(self, seed):
        on = date(2026, 7, 1)
        async with async_session_factory() as session:
            assert await DocumentSequenceService(session, seed.acme.id).next_lr_number("BLR", on) == "BLR-26-001"
            await session.rollback()

        async with async_session_factory() as session:
            assert await DocumentSequenceService(session, seed.acme.id).next_lr_number("BLR", on) == "BLR-26-001"

    async def test_concurrent_allocations_never_collide(self, seed):
        on = date(2026, 8, 15)

        async def allocate():
            async with get_db_session() as session:
                return await DocumentSequenceService(session, seed.acme.id).next_lr_number("MUM", on)

        numbers = await asyncio.gather(*(allocate() for _ in range(50)))

        assert len(set(numbers)) == 50
        assert all(re.fullmatch(r"MUM-26-\d{3}", n) for n in numbers)
        assert sorted(numbers) == [f"MUM-26-{i:03d}" for i in range(1, 51)]
