"""
Scan Schemas

Request and response models for the scan API endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from app.features.scan.models.scan_request import ScanMode


# ============================================================================
# Admission
# ============================================================================

class GeoLocation(BaseModel):
    """Optional location hint used to localise keyword queries."""
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    label: Optional[str] = None

    def location_label(self) -> Optional[str]:
        if self.city and self.region:
            return f"{self.city}, {self.region}"
        return self.city or self.region or self.label or None


class ScanStartRequest(BaseModel):
    """Request to admit (and run) a scan."""
    url: str
    mode: ScanMode = ScanMode.light
    force: bool = False
    geo_location: Optional[GeoLocation] = None

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "mode": "light",
                "force": False,
                "geo_location": {"city": "Sacramento", "region": "CA"},
            }
        }


class Admission(BaseModel):
    """Outcome of the idempotency gate."""
    scan_id: str
    status: str
    idempotency_key: str
    deduplicated: bool


class ScanStartResponse(BaseModel):
    scan_id: str
    status: str
    deduplicated: bool
    message: str


# ============================================================================
# Status / report
# ============================================================================

class AgentRunItem(BaseModel):
    agent_name: str
    status: str
    duration_ms: Optional[int] = None


class ScanStatusResponse(BaseModel):
    scan_id: str
    status: str
    progress: int
    message: str
    agents: List[AgentRunItem] = []


class ScanReportResponse(BaseModel):
    scan_id: str
    domain: str
    scan_mode: str
    status: str
    findings: Optional[List[Dict[str, Any]]] = None
    score_summary: Optional[Dict[str, Any]] = None
    full_report: Optional[Dict[str, Any]] = None
    agent_summary: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# ============================================================================
# Rollup
# ============================================================================

class TrendPoint(BaseModel):
    date: str
    score: int


class RollupScores(BaseModel):
    overall: Optional[int] = None
    technical: Optional[int] = None
    performance: Optional[int] = None
    serp: Optional[int] = None
    content: Optional[int] = None


class RollupResponse(BaseModel):
    domain: str
    latest_scan_id: Optional[str] = None
    scan_mode: Optional[str] = None
    scores: RollupScores
    findings_count: int = 0
    scan_count: int
    score_trend: List[TrendPoint]
    first_scan_at: Optional[datetime] = None
    latest_scan_at: Optional[datetime] = None
