"""Report schemas - aggregate rollups over a date range."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class ServiceReportRow(BaseModel):
    """Per-service metrics within the range."""
    id: int
    name: str
    url: str
    uptime_percentage: Optional[float] = None
    avg_response_time_ms: Optional[int] = None
    total_checks: int = 0
    incidents: int = 0


class DailyUptime(BaseModel):
    date: str  # YYYY-MM-DD
    uptime_percentage: Optional[float] = None


class DailyIncidents(BaseModel):
    date: str
    count: int = 0


class StatusDistribution(BaseModel):
    operational: int = 0
    degraded: int = 0
    down: int = 0


class SeverityDistribution(BaseModel):
    minor: int = 0
    major: int = 0
    critical: int = 0


class Report(BaseModel):
    """Uptime, latency and incident rollup."""
    range_days: int
    generated_at: datetime
    services_count: int
    avg_uptime_across_services: Optional[float] = None
    total_checks: int
    total_incidents: int
    resolved_incidents: int
    mttr_minutes: Optional[float] = None
    services: List[ServiceReportRow]
    daily_uptime: List[DailyUptime]
    incidents_daily: List[DailyIncidents]
    status_distribution: StatusDistribution
    incidents_by_severity: SeverityDistribution
