from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, JSON
import enum

from app.platform.db.base import BaseModel


class AgentRunStatus(str, enum.Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    skipped = "skipped"


TERMINAL_AGENT_STATUSES = (
    AgentRunStatus.completed.value,
    AgentRunStatus.failed.value,
    AgentRunStatus.skipped.value,
)


class AgentRun(BaseModel):
    """
    Execution record for one agent of one scan.

    Rows only move forward (pending -> running -> terminal) and are never
    touched again once a terminal status is written.
    """
    __tablename__ = "agent_runs"

    scan_id = Column(
        String(64), ForeignKey("scan_requests.scan_id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_name = Column(String(64), nullable=False)
    scan_mode = Column(String(16), nullable=False)

    status = Column(String(16), nullable=False, default=AgentRunStatus.pending.value)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_ms = Column(Integer, nullable=True)

    result_summary = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    skip_reason = Column(String(255), nullable=True)

    __table_args__ = (
        Index('idx_agent_runs_scan_agent', 'scan_id', 'agent_name'),
    )
