from sqlalchemy import Column, String, DateTime, Text, Index, JSON
import enum

from app.platform.db.base import BaseModel


class ScanStatus(str, enum.Enum):
    """Scan request state machine: queued -> running -> preview_ready | failed

    `completed` marks a scan whose full report was delivered; it deduplicates
    like preview_ready.
    """
    queued = "queued"
    running = "running"
    preview_ready = "preview_ready"
    completed = "completed"
    failed = "failed"


class ScanMode(str, enum.Enum):
    light = "light"
    full = "full"


# Rows in these states short-circuit a repeated admission for the same key
DEDUPLICATING_STATUSES = (
    ScanStatus.running.value,
    ScanStatus.preview_ready.value,
    ScanStatus.completed.value,
)

TERMINAL_SCAN_STATUSES = (ScanStatus.preview_ready.value, ScanStatus.completed.value, ScanStatus.failed.value)


class ScanRequest(BaseModel):
    """
    One admitted scan attempt.

    Owned and mutated only by the pipeline invocation that created it.
    """
    __tablename__ = "scan_requests"

    scan_id = Column(String(64), nullable=False, unique=True, index=True)

    target_url = Column(String(2048), nullable=False)
    normalized_url = Column(String(2048), nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    scan_mode = Column(String(16), nullable=False, default=ScanMode.light.value)
    idempotency_key = Column(String(320), nullable=False, index=True)

    status = Column(String(32), nullable=False, default=ScanStatus.queued.value, index=True)

    geo_location = Column(JSON, nullable=True)

    # Pipeline output (null until the pipeline completes)
    preview_findings = Column(JSON, nullable=True)
    score_summary = Column(JSON, nullable=True)
    full_report = Column(JSON, nullable=True)
    agent_summary = Column(JSON, nullable=True)

    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_scan_requests_idempotency_status', 'idempotency_key', 'status'),
    )
