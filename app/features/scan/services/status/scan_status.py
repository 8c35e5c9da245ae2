from typing import List, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.scan.models.agent_run import AgentRun, AgentRunStatus, TERMINAL_AGENT_STATUSES
from app.features.scan.models.scan_request import ScanRequest, ScanStatus
from app.features.scan.schemas.scan import AgentRunItem, ScanReportResponse, ScanStatusResponse
from app.platform.logger import get_logger

logger = get_logger(__name__)

AGENT_LABELS = {
    "technical_crawl": "Scanning homepage...",
    "cwv": "Running performance analysis...",
    "serp": "Checking SERP rankings...",
    "competitive": "Analyzing competitors...",
    "atlas_ai": "Evaluating AI search readiness...",
}


def compute_progress(
    scan_status: str,
    error_message: Optional[str],
    agents: Sequence[AgentRunItem],
) -> Tuple[int, str]:
    """Map a scan status plus its agent rows to (progress %, user-facing message)."""
    if scan_status == ScanStatus.queued.value:
        return 10, "Queued for scanning..."

    if scan_status in (ScanStatus.preview_ready.value, ScanStatus.completed.value):
        return 100, "Scan complete!"

    if scan_status == ScanStatus.failed.value:
        return 0, error_message or "Scan failed"

    if scan_status != ScanStatus.running.value:
        return 0, "Starting scan..."

    if not agents:
        return 10, "Initializing scan agents..."

    total = len(agents)
    done = sum(1 for a in agents if a.status in TERMINAL_AGENT_STATUSES)

    running = next((a for a in agents if a.status == AgentRunStatus.running.value), None)
    if running is not None:
        progress = round(done / total * 90) + 10
        return progress, AGENT_LABELS.get(running.agent_name, f"Running {running.agent_name}...")

    if done == total:
        return 95, "Finalizing report..."

    progress = round(done / total * 90) + 10
    pending = next((a for a in agents if a.status == AgentRunStatus.pending.value), None)
    if pending is not None:
        return progress, AGENT_LABELS.get(pending.agent_name, f"Preparing {pending.agent_name}...")
    return progress, "Starting scan..."


async def _get_scan_or_404(scan_id: str, db: AsyncSession) -> ScanRequest:
    result = await db.execute(select(ScanRequest).where(ScanRequest.scan_id == scan_id))
    scan = result.scalar_one_or_none()
    if not scan:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan not found")
    return scan


async def get_scan_status(scan_id: str, db: AsyncSession) -> ScanStatusResponse:
    scan = await _get_scan_or_404(scan_id, db)

    agents: List[AgentRunItem] = []
    if scan.status == ScanStatus.running.value:
        result = await db.execute(
            select(AgentRun.agent_name, AgentRun.status, AgentRun.duration_ms)
            .where(AgentRun.scan_id == scan_id)
            .order_by(AgentRun.id)
        )
        agents = [
            AgentRunItem(agent_name=row.agent_name, status=row.status, duration_ms=row.duration_ms)
            for row in result.all()
        ]

    progress, message = compute_progress(scan.status, scan.error_message, agents)
    return ScanStatusResponse(
        scan_id=scan.scan_id,
        status=scan.status,
        progress=progress,
        message=message,
        agents=agents,
    )


async def get_scan_report(scan_id: str, db: AsyncSession) -> ScanReportResponse:
    scan = await _get_scan_or_404(scan_id, db)
    return ScanReportResponse(
        scan_id=scan.scan_id,
        domain=scan.domain,
        scan_mode=scan.scan_mode,
        status=scan.status,
        findings=scan.preview_findings,
        score_summary=scan.score_summary,
        full_report=scan.full_report,
        agent_summary=scan.agent_summary,
        error_message=scan.error_message,
        created_at=scan.created_at,
        started_at=scan.started_at,
        completed_at=scan.completed_at,
    )
