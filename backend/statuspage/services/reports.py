"""Reports - read-only uptime, latency and incident rollups over a date range."""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Incident, Service, StatusCheck
from ..schemas.report import (
    DailyIncidents,
    DailyUptime,
    Report,
    ServiceReportRow,
    SeverityDistribution,
    StatusDistribution,
)
from ..utils.time_utils import utcnow
from .status_queries import uptime_percentage

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 30
MAX_RANGE_DAYS = 365
SUPPORTED_FORMATS = ("json",)


def clamp_range_days(value: Optional[int]) -> int:
    """Range in days limited to 1..365, defaulting to 30."""
    if value is None or value <= 0:
        return DEFAULT_RANGE_DAYS
    return min(value, MAX_RANGE_DAYS)


def _day_key(value) -> str:
    """Normalize a date() result (str on SQLite, date on PostgreSQL)."""
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


def _days(start: date, end: date) -> List[str]:
    days = []
    current = start
    while current <= end:
        days.append(current.strftime("%Y-%m-%d"))
        current += timedelta(days=1)
    return days


def mean_time_to_resolve(incidents) -> Optional[float]:
    """Average minutes from start to resolution, rounded to 2 decimals."""
    durations = [
        (resolved_at - started_at).total_seconds() / 60
        for started_at, resolved_at in incidents
        if started_at and resolved_at
    ]
    if not durations:
        return None
    return round(sum(durations) / len(durations), 2)


async def build_report(
    session: AsyncSession,
    range_days: int = DEFAULT_RANGE_DAYS,
    now: Optional[datetime] = None,
) -> Report:
    """Aggregate metrics over the last ``range_days`` days."""
    now = now or utcnow()
    cutoff = now - timedelta(days=range_days)

    services = (await session.execute(
        select(Service).where(Service.is_active.is_(True)).order_by(Service.name)
    )).scalars().all()

    # Per-service check metrics
    checks_result = await session.execute(
        select(
            StatusCheck.service_id,
            func.count(StatusCheck.id),
            func.sum(case((StatusCheck.status == "operational", 1), else_=0)),
            func.avg(StatusCheck.response_time_ms),
        )
        .where(StatusCheck.checked_at >= cutoff)
        .group_by(StatusCheck.service_id)
    )
    check_metrics: Dict[int, tuple] = {
        service_id: (int(total or 0), int(ok or 0), avg_ms)
        for service_id, total, ok, avg_ms in checks_result.all()
    }

    incidents_result = await session.execute(
        select(Incident.service_id, func.count(Incident.id))
        .where(Incident.started_at >= cutoff)
        .group_by(Incident.service_id)
    )
    incident_counts = dict(incidents_result.all())

    rows = []
    for service in services:
        total, ok, avg_ms = check_metrics.get(service.id, (0, 0, None))
        rows.append(ServiceReportRow(
            id=service.id,
            name=service.name,
            url=service.url,
            uptime_percentage=uptime_percentage(ok, total),
            avg_response_time_ms=round(float(avg_ms)) if avg_ms is not None else None,
            total_checks=total,
            incidents=incident_counts.get(service.id, 0),
        ))

    uptimes = [r.uptime_percentage for r in rows if r.uptime_percentage is not None]
    avg_uptime = round(sum(uptimes) / len(uptimes), 2) if uptimes else None

    # Overall metrics
    total_incidents = (await session.execute(
        select(func.count(Incident.id)).where(Incident.started_at >= cutoff)
    )).scalar() or 0

    resolved = (await session.execute(
        select(Incident.started_at, Incident.resolved_at)
        .where(Incident.resolved_at.is_not(None), Incident.resolved_at >= cutoff)
    )).all()

    total_checks = (await session.execute(
        select(func.count(StatusCheck.id)).where(StatusCheck.checked_at >= cutoff)
    )).scalar() or 0

    # Daily uptime across all services
    day_column = func.date(StatusCheck.checked_at)
    daily_result = await session.execute(
        select(
            day_column,
            func.count(StatusCheck.id),
            func.sum(case((StatusCheck.status == "operational", 1), else_=0)),
        )
        .where(StatusCheck.checked_at >= cutoff)
        .group_by(day_column)
    )
    daily_checks = {
        _day_key(day): uptime_percentage(int(ok or 0), int(total or 0))
        for day, total, ok in daily_result.all()
    }

    incident_day = func.date(Incident.started_at)
    incidents_daily_result = await session.execute(
        select(incident_day, func.count(Incident.id))
        .where(Incident.started_at >= cutoff)
        .group_by(incident_day)
    )
    daily_incidents = {_day_key(day): int(count) for day, count in incidents_daily_result.all()}

    days = _days(cutoff.date(), now.date())

    # Status distribution (checks)
    status_result = await session.execute(
        select(StatusCheck.status, func.count(StatusCheck.id))
        .where(StatusCheck.checked_at >= cutoff)
        .group_by(StatusCheck.status)
    )
    status_counts = {status: int(count) for status, count in status_result.all()}

    severity_result = await session.execute(
        select(Incident.severity, func.count(Incident.id))
        .where(Incident.started_at >= cutoff)
        .group_by(Incident.severity)
    )
    severity_counts = {severity: int(count) for severity, count in severity_result.all()}

    return Report(
        range_days=range_days,
        generated_at=now,
        services_count=len(rows),
        avg_uptime_across_services=avg_uptime,
        total_checks=int(total_checks),
        total_incidents=int(total_incidents),
        resolved_incidents=len(resolved),
        mttr_minutes=mean_time_to_resolve(resolved),
        services=rows,
        daily_uptime=[DailyUptime(date=d, uptime_percentage=daily_checks.get(d)) for d in days],
        incidents_daily=[DailyIncidents(date=d, count=daily_incidents.get(d, 0)) for d in days],
        status_distribution=StatusDistribution(
            operational=status_counts.get("operational", 0),
            degraded=status_counts.get("degraded", 0),
            down=status_counts.get("down", 0),
        ),
        incidents_by_severity=SeverityDistribution(
            minor=severity_counts.get("minor", 0),
            major=severity_counts.get("major", 0),
            critical=severity_counts.get("critical", 0),
        ),
    )
