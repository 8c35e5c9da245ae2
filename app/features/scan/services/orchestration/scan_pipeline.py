"""
Scan Pipeline

Entry point for one scan request:

    admit (IdempotencyGate)
      -> orchestrate phases (PhaseScheduler)
      -> aggregate scores (ScoreAggregator)
      -> finalize agent summary
      -> merge rollup (best effort)
      -> mark ScanRequest preview_ready

Agent-level failures only reduce the data available to aggregation. Anything
that escapes orchestration or aggregation marks the scan failed.
"""
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.features.scan.models.scan_request import ScanRequest, ScanStatus, TERMINAL_SCAN_STATUSES
from app.features.scan.schemas.pipeline import AggregateResult, ScanContext
from app.features.scan.schemas.scan import Admission, ScanStartRequest
from app.features.scan.services.admission.idempotency_gate import IdempotencyGate
from app.features.scan.services.agents.agent_executor import AgentExecutor, truncate_error
from app.features.scan.services.orchestration.collaborators import ScanCollaborators
from app.features.scan.services.orchestration.phase_scheduler import PhaseScheduler
from app.features.scan.services.rollup.rollup_updater import RollupUpdater
from app.features.scan.services.scoring.score_aggregator import aggregate
from app.platform.config import Settings, settings as default_settings
from app.platform.logger import get_logger
from app.platform.utils.url_validator import extract_domain, validate_url

logger = get_logger(__name__)


class InvalidScanUrlError(ValueError):
    pass


class ScanPipeline:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        collaborators: Optional[ScanCollaborators] = None,
        settings: Settings = default_settings,
    ):
        self._session_factory = session_factory
        self.settings = settings
        self.gate = IdempotencyGate(session_factory, tz_name=settings.SCAN_TIMEZONE)
        self.executor = AgentExecutor(session_factory)
        self.scheduler = PhaseScheduler(self.executor, collaborators or ScanCollaborators(), settings)
        self.rollup = RollupUpdater(session_factory, tz_name=settings.SCAN_TIMEZONE)

    async def admit(self, request: ScanStartRequest) -> Tuple[Admission, Optional[ScanContext]]:
        """
        Validate the URL and pass the request through the idempotency gate.

        Returns:
            (admission, context) where context is None for a deduplicated request

        Raises:
            InvalidScanUrlError: the URL cannot be scanned
            StoreUnavailableError: the store could not be reached
        """
        is_valid, normalized_url, error_message = validate_url(request.url)
        if not is_valid:
            raise InvalidScanUrlError(error_message)

        domain = extract_domain(normalized_url)
        geo = request.geo_location
        admission = await self.gate.admit(
            domain,
            request.mode,
            request.force,
            target_url=request.url,
            normalized_url=normalized_url,
            geo_location=geo.model_dump(exclude_none=True) if geo else None,
        )
        if admission.deduplicated:
            return admission, None

        context = ScanContext(
            scan_id=admission.scan_id,
            domain=domain,
            mode=request.mode,
            location=geo.location_label() if geo else None,
        )
        return admission, context

    async def start_scan(self, request: ScanStartRequest) -> Admission:
        """Admit and, unless deduplicated, run the scan to a terminal status."""
        admission, context = await self.admit(request)
        if context is not None:
            await self.run_admitted(context)
        return admission

    async def run_admitted(self, scan: ScanContext) -> Optional[AggregateResult]:
        started = time.monotonic()
        try:
            pipeline_result = await self.scheduler.orchestrate(scan)
            result = aggregate(pipeline_result.to_phase_outputs())
            agent_summary = await self.executor.finalize_summary(scan.scan_id)

            completed_at = datetime.now(timezone.utc)
            await self.rollup.merge(
                scan.domain,
                scan.scan_id,
                scan.mode,
                result.score_summary,
                findings_count=len(result.findings),
                completed_at=completed_at,
            )
            await self._finish(
                scan.scan_id,
                status=ScanStatus.preview_ready.value,
                preview_findings=result.findings_payload(),
                score_summary=result.score_summary.model_dump(mode="json", by_alias=True),
                full_report=result.full_report,
                agent_summary=agent_summary,
                completed_at=completed_at,
            )
        except Exception as e:
            error = truncate_error(str(e) or e.__class__.__name__)
            logger.exception(f"[Scan] pipeline_failed scan_id={scan.scan_id} domain={scan.domain}: {error}")
            await self._mark_failed(scan.scan_id, error)
            return None

        total_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"[ScanComplete] scan_id={scan.scan_id} domain={scan.domain} "
            f"mode={scan.mode.value} overall={result.score_summary.overall} total_ms={total_ms}"
        )
        return result

    async def _finish(self, scan_id: str, **values) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(ScanRequest)
                .where(
                    ScanRequest.scan_id == scan_id,
                    ScanRequest.status.notin_(TERMINAL_SCAN_STATUSES),
                )
                .values(**values)
            )
            await session.commit()

    async def _mark_failed(self, scan_id: str, error: str) -> None:
        try:
            await self._finish(
                scan_id,
                status=ScanStatus.failed.value,
                error_message=error,
                completed_at=datetime.now(timezone.utc),
            )
        except SQLAlchemyError as e:
            logger.error(f"[Scan] could not mark scan {scan_id} failed: {e}")
