"""
Rollup Updater

Merges one completed scan into the per-domain rollup. All writes are server-side
merges keyed on domain (increment, append, max-by-timestamp), so concurrent
scans of the same domain converge instead of losing updates.
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.scan.models.scan_request import ScanMode
from app.features.scan.models.scan_rollup import ScanRollup, ScanRollupTrendPoint
from app.features.scan.schemas.pipeline import ScoreSummary
from app.features.scan.schemas.scan import RollupResponse, RollupScores, TrendPoint
from app.features.scan.services.admission.idempotency_gate import calendar_day
from app.platform.logger import get_logger

logger = get_logger(__name__)


def _insert_for(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise ValueError(f"No native upsert for dialect '{dialect}'")


def rollup_response(rollup: ScanRollup) -> RollupResponse:
    return RollupResponse(
        domain=rollup.domain,
        latest_scan_id=rollup.latest_scan_id,
        scan_mode=rollup.scan_mode,
        scores=RollupScores(
            overall=rollup.overall_score,
            technical=rollup.technical_score,
            performance=rollup.performance_score,
            serp=rollup.serp_score,
            content=rollup.content_score,
        ),
        findings_count=rollup.findings_count or 0,
        scan_count=rollup.scan_count,
        score_trend=[TrendPoint(date=p.point_date, score=p.score) for p in rollup.trend_points],
        first_scan_at=rollup.first_scan_at,
        latest_scan_at=rollup.latest_scan_at,
    )


class RollupUpdater:

    def __init__(self, session_factory: async_sessionmaker, tz_name: str = "UTC"):
        self._session_factory = session_factory
        self._tz = ZoneInfo(tz_name)

    async def merge(
        self,
        domain: str,
        scan_id: str,
        mode: ScanMode,
        scores: ScoreSummary,
        findings_count: int = 0,
        completed_at: Optional[datetime] = None,
    ) -> None:
        """
        Upsert the domain rollup and append one trend point.

        Never raises: the rollup is a secondary index, so failures are logged
        and swallowed.
        """
        completed_at = completed_at or datetime.now(timezone.utc)
        mode_value = ScanMode(mode).value

        try:
            async with self._session_factory() as session:
                table = ScanRollup.__table__
                insert = _insert_for(session)

                stmt = insert(table).values(
                    domain=domain,
                    latest_scan_id=scan_id,
                    scan_mode=mode_value,
                    overall_score=scores.overall,
                    technical_score=scores.technical,
                    performance_score=scores.performance,
                    serp_score=scores.serp,
                    content_score=scores.content,
                    findings_count=findings_count,
                    scan_count=1,
                    first_scan_at=completed_at,
                    latest_scan_at=completed_at,
                )
                excluded = stmt.excluded

                # latest_* only move forward in time
                is_newer = or_(
                    table.c.latest_scan_at.is_(None),
                    excluded.latest_scan_at >= table.c.latest_scan_at,
                )

                def latest(column: str):
                    return case((is_newer, excluded[column]), else_=table.c[column])

                stmt = stmt.on_conflict_do_update(
                    index_elements=[table.c.domain],
                    set_={
                        "scan_count": table.c.scan_count + 1,
                        "latest_scan_id": latest("latest_scan_id"),
                        "scan_mode": latest("scan_mode"),
                        "overall_score": latest("overall_score"),
                        "technical_score": latest("technical_score"),
                        "performance_score": latest("performance_score"),
                        "serp_score": latest("serp_score"),
                        "content_score": latest("content_score"),
                        "findings_count": latest("findings_count"),
                        "latest_scan_at": latest("latest_scan_at"),
                        "first_scan_at": case(
                            (
                                or_(
                                    table.c.first_scan_at.is_(None),
                                    excluded.first_scan_at < table.c.first_scan_at,
                                ),
                                excluded.first_scan_at,
                            ),
                            else_=table.c.first_scan_at,
                        ),
                        "updated_at": completed_at,
                    },
                )
                await session.execute(stmt)

                session.add(
                    ScanRollupTrendPoint(
                        domain=domain,
                        scan_id=scan_id,
                        scan_mode=mode_value,
                        point_date=calendar_day(completed_at, self._tz).isoformat(),
                        score=scores.overall,
                    )
                )
                await session.commit()

                scan_count = await session.scalar(
                    select(ScanRollup.scan_count).where(ScanRollup.domain == domain)
                )
        except Exception:
            logger.exception(f"[Rollup] upsert_failed domain={domain} scan_id={scan_id}")
            return

        logger.info(
            f"[Rollup] domain_updated domain={domain} scan_count={scan_count} latest_score={scores.overall}"
        )

    async def get_rollup(self, domain: str) -> Optional[ScanRollup]:
        async with self._session_factory() as session:
            result = await session.execute(select(ScanRollup).where(ScanRollup.domain == domain))
            return result.scalar_one_or_none()
