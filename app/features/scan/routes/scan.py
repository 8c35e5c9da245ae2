from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.scan.schemas.scan import ScanStartRequest, ScanStartResponse
from app.features.scan.services.orchestration.scan_pipeline import InvalidScanUrlError, ScanPipeline
from app.features.scan.services.rollup.rollup_updater import RollupUpdater, rollup_response
from app.features.scan.services.status.scan_status import get_scan_report, get_scan_status
from app.platform.db.session import get_db, get_session_factory
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])
rollup_router = APIRouter(prefix="/rollups", tags=["rollups"])


def get_scan_pipeline(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> ScanPipeline:
    return ScanPipeline(session_factory)


@router.post("")
async def start_scan(
    request: ScanStartRequest,
    background_tasks: BackgroundTasks,
    pipeline: ScanPipeline = Depends(get_scan_pipeline),
):
    """
    Admit a scan for the URL's domain and run it in the background.

    A request for the same domain and mode on the same day returns the
    existing scan instead (unless `force` is set).
    """
    try:
        admission, context = await pipeline.admit(request)
    except InvalidScanUrlError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid URL: {e}"
        )

    if context is None:
        message = "Existing scan found for today"
    else:
        background_tasks.add_task(pipeline.run_admitted, context)
        message = "Scan started successfully"

    response = ScanStartResponse(
        scan_id=admission.scan_id,
        status=admission.status,
        deduplicated=admission.deduplicated,
        message=message,
    )
    return api_response(data=response.model_dump(), message=message)


@router.get("/{scan_id}/status")
async def scan_status(scan_id: str, db: AsyncSession = Depends(get_db)):
    result = await get_scan_status(scan_id, db)
    return api_response(data=result.model_dump(), message="Scan status retrieved")


@router.get("/{scan_id}")
async def scan_report(scan_id: str, db: AsyncSession = Depends(get_db)):
    result = await get_scan_report(scan_id, db)
    return api_response(data=result.model_dump(), message="Scan report retrieved")


@rollup_router.get("/{domain}")
async def domain_rollup(
    domain: str,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    rollup = await RollupUpdater(session_factory).get_rollup(domain.strip().lower())
    if not rollup:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rollup not found")
    return api_response(data=rollup_response(rollup).model_dump(), message="Rollup retrieved")
