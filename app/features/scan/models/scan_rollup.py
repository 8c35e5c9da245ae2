from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from app.platform.db.base import BaseModel


class ScanRollup(BaseModel):
    """
    Per-domain running aggregate of completed scans.

    Shared by every scan of the domain; only written through the merge in
    RollupUpdater (server-side increment and max-by-timestamp), never deleted.
    """
    __tablename__ = "scan_rollups"

    domain = Column(String(255), nullable=False, unique=True, index=True)

    latest_scan_id = Column(String(64), nullable=True)
    scan_mode = Column(String(16), nullable=True)

    overall_score = Column(Integer, nullable=True)
    technical_score = Column(Integer, nullable=True)
    performance_score = Column(Integer, nullable=True)
    serp_score = Column(Integer, nullable=True)
    content_score = Column(Integer, nullable=True)
    findings_count = Column(Integer, default=0, nullable=False)

    scan_count = Column(Integer, default=1, nullable=False)

    first_scan_at = Column(DateTime(timezone=True), nullable=True)
    latest_scan_at = Column(DateTime(timezone=True), nullable=True)

    trend_points = relationship(
        "ScanRollupTrendPoint",
        order_by=lambda: [ScanRollupTrendPoint.point_date, ScanRollupTrendPoint.id],
        lazy="selectin",
        viewonly=True,
    )


class ScanRollupTrendPoint(BaseModel):
    """
    One {date, score} point of a domain's score trend.

    Insert-only; read back by date, then by primary key (uuid7, i.e. append order).
    """
    __tablename__ = "scan_rollup_trend_points"

    domain = Column(
        String(255), ForeignKey("scan_rollups.domain", ondelete="CASCADE"), nullable=False, index=True
    )
    scan_id = Column(String(64), nullable=False)
    scan_mode = Column(String(16), nullable=True)
    point_date = Column(String(10), nullable=False)
    score = Column(Integer, nullable=False)
