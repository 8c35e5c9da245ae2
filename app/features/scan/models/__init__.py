"""
Scan models package.
"""
from app.features.scan.models.scan_request import ScanRequest, ScanStatus, ScanMode
from app.features.scan.models.agent_run import AgentRun, AgentRunStatus
from app.features.scan.models.scan_rollup import ScanRollup, ScanRollupTrendPoint

__all__ = [
    "ScanRequest",
    "ScanStatus",
    "ScanMode",
    "AgentRun",
    "AgentRunStatus",
    "ScanRollup",
    "ScanRollupTrendPoint",
]
