from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from app.features.scan.models.scan_request import ScanMode, ScanRequest, ScanStatus
from app.features.scan.services.admission.idempotency_gate import (
    IdempotencyGate,
    build_idempotency_key,
    generate_scan_id,
)
from app.platform.exceptions import StoreUnavailableError


def fixed_clock(value: datetime):
    return lambda: value


async def count_scans(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(ScanRequest))


def test_build_idempotency_key():
    assert build_idempotency_key("example.com", ScanMode.light, date(2026, 3, 1)) == "example.com-light-2026-03-01"
    assert build_idempotency_key("example.com", "full", date(2026, 3, 1)) == "example.com-full-2026-03-01"


def test_generate_scan_id_format():
    scan_id = generate_scan_id(datetime(2026, 3, 1, tzinfo=timezone.utc))
    prefix, millis, suffix = scan_id.split("_")
    assert prefix == "scan"
    assert millis == str(int(datetime(2026, 3, 1, tzinfo=timezone.utc).timestamp() * 1000))
    assert len(suffix) == 8


@pytest.mark.asyncio
async def test_admit_creates_running_scan(session_factory):
    gate = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 12, tzinfo=timezone.utc)))

    admission = await gate.admit("example.com", ScanMode.light, target_url="example.com")

    assert admission.deduplicated is False
    assert admission.status == ScanStatus.running.value
    assert admission.idempotency_key == "example.com-light-2026-03-01"

    async with session_factory() as session:
        scan = (await session.execute(select(ScanRequest))).scalar_one()
    assert scan.scan_id == admission.scan_id
    assert scan.status == "running"
    assert scan.normalized_url == "https://example.com"
    assert scan.target_url == "example.com"
    assert scan.started_at is not None


@pytest.mark.asyncio
async def test_repeated_admission_same_day_is_deduplicated(session_factory):
    gate = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 9, tzinfo=timezone.utc)))

    first = await gate.admit("example.com", ScanMode.light)
    second = await gate.admit("example.com", ScanMode.light)

    assert second.deduplicated is True
    assert second.scan_id == first.scan_id
    assert await count_scans(session_factory) == 1


@pytest.mark.asyncio
async def test_modes_and_days_are_independent(session_factory):
    day_one = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 9, tzinfo=timezone.utc)))
    day_two = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 2, 9, tzinfo=timezone.utc)))

    light = await day_one.admit("example.com", ScanMode.light)
    full = await day_one.admit("example.com", ScanMode.full)
    tomorrow = await day_two.admit("example.com", ScanMode.light)

    assert not full.deduplicated
    assert not tomorrow.deduplicated
    assert len({light.scan_id, full.scan_id, tomorrow.scan_id}) == 3
    assert await count_scans(session_factory) == 3


@pytest.mark.asyncio
async def test_force_bypasses_deduplication(session_factory):
    gate = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 9, tzinfo=timezone.utc)))

    first = await gate.admit("example.com", ScanMode.light)
    forced = await gate.admit("example.com", ScanMode.light, force=True)

    assert forced.deduplicated is False
    assert forced.scan_id != first.scan_id
    assert await count_scans(session_factory) == 2


@pytest.mark.asyncio
async def test_failed_scan_does_not_deduplicate(session_factory):
    gate = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 9, tzinfo=timezone.utc)))

    first = await gate.admit("example.com", ScanMode.light)
    async with session_factory() as session:
        await session.execute(
            update(ScanRequest).where(ScanRequest.scan_id == first.scan_id).values(status="failed")
        )
        await session.commit()

    retry = await gate.admit("example.com", ScanMode.light)
    assert retry.deduplicated is False
    assert retry.scan_id != first.scan_id


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ScanStatus.preview_ready.value, ScanStatus.completed.value])
async def test_finished_scan_deduplicates(session_factory, status):
    gate = IdempotencyGate(session_factory, clock=fixed_clock(datetime(2026, 3, 1, 9, tzinfo=timezone.utc)))

    first = await gate.admit("example.com", ScanMode.full)
    async with session_factory() as session:
        await session.execute(
            update(ScanRequest).where(ScanRequest.scan_id == first.scan_id).values(status=status)
        )
        await session.commit()

    again = await gate.admit("example.com", ScanMode.full)
    assert again.deduplicated is True
    assert again.status == status


def test_calendar_day_follows_configured_timezone():
    # 02:00 UTC on March 2nd is still March 1st in Los Angeles
    clock = fixed_clock(datetime(2026, 3, 2, 2, tzinfo=timezone.utc))
    assert IdempotencyGate(MagicMock(), tz_name="UTC", clock=clock).today() == date(2026, 3, 2)
    assert IdempotencyGate(MagicMock(), tz_name="America/Los_Angeles", clock=clock).today() == date(2026, 3, 1)


@pytest.mark.asyncio
async def test_store_failure_raises_store_unavailable():
    session = MagicMock()
    session.__aenter__.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))
    factory = MagicMock(return_value=session)

    gate = IdempotencyGate(factory)
    with pytest.raises(StoreUnavailableError):
        await gate.admit("example.com", ScanMode.light)
