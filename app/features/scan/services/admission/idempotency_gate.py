"""
Idempotency Gate

Collapses repeated scan requests for the same (domain, mode, calendar day) onto
one ScanRequest. Admission creates exactly one row; deduplication creates none.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.features.scan.models.scan_request import (
    DEDUPLICATING_STATUSES,
    ScanMode,
    ScanRequest,
    ScanStatus,
)
from app.features.scan.schemas.scan import Admission
from app.platform.exceptions import StoreUnavailableError
from app.platform.logger import get_logger

logger = get_logger(__name__)


def build_idempotency_key(domain: str, mode: ScanMode, day: date) -> str:
    return f"{domain}-{ScanMode(mode).value}-{day.isoformat()}"


def calendar_day(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar day of `moment` in the scan timezone; naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def generate_scan_id(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"scan_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


class IdempotencyGate:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        tz_name: str = "UTC",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._session_factory = session_factory
        self._tz = ZoneInfo(tz_name)
        self._clock = clock

    def today(self) -> date:
        return calendar_day(self._clock(), self._tz)

    async def admit(
        self,
        domain: str,
        mode: ScanMode,
        force: bool = False,
        *,
        target_url: Optional[str] = None,
        normalized_url: Optional[str] = None,
        geo_location: Optional[Dict[str, Any]] = None,
    ) -> Admission:
        """
        Admit a new scan or return the one already running/finished today.

        Raises:
            StoreUnavailableError: the store could not be read or written.
        """
        key = build_idempotency_key(domain, mode, self.today())

        try:
            async with self._session_factory() as session:
                if not force:
                    result = await session.execute(
                        select(ScanRequest.scan_id, ScanRequest.status)
                        .where(
                            ScanRequest.idempotency_key == key,
                            ScanRequest.status.in_(DEDUPLICATING_STATUSES),
                        )
                        .order_by(ScanRequest.created_at.desc())
                        .limit(1)
                    )
                    existing = result.first()
                    if existing is not None:
                        logger.info(
                            f"[Scan] idempotency_hit domain={domain} key={key} existing_scan_id={existing.scan_id}"
                        )
                        return Admission(
                            scan_id=existing.scan_id,
                            status=existing.status,
                            idempotency_key=key,
                            deduplicated=True,
                        )

                now = self._clock()
                scan_id = generate_scan_id(now)
                url = normalized_url or f"https://{domain}"
                session.add(
                    ScanRequest(
                        scan_id=scan_id,
                        target_url=target_url or url,
                        normalized_url=url,
                        domain=domain,
                        scan_mode=ScanMode(mode).value,
                        idempotency_key=key,
                        status=ScanStatus.running.value,
                        geo_location=geo_location,
                        started_at=now,
                    )
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"[Scan] admission_failed domain={domain} key={key}: {e}")
            raise StoreUnavailableError(f"Could not admit scan for {domain}") from e

        logger.info(f"[Scan] scan_started scan_id={scan_id} domain={domain} mode={ScanMode(mode).value}")
        return Admission(
            scan_id=scan_id,
            status=ScanStatus.running.value,
            idempotency_key=key,
            deduplicated=False,
        )
