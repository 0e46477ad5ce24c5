"""Read models for the dashboard, banner and admin tools.

Pure reads: nothing here mutates engine state.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import AnnouncementReason, Incident, IncidentUpdate, Service, StatusCheck
from ..schemas.incident import (
    ActiveIncidentsSummary,
    IncidentResponse,
    IncidentUpdateResponse,
    ServiceReason,
)
from ..schemas.service import ServiceDetail, ServiceResponse, ServiceWithStatus, StatusCheckResponse
from ..utils.time_utils import utcnow
from .history import history_store
from .reasons import pick_deterministic

logger = logging.getLogger(__name__)

UPTIME_WINDOW_DAYS = 30
DETAIL_INCIDENT_LIMIT = 10


def uptime_percentage(operational: int, total: int) -> Optional[float]:
    """Share of operational checks, rounded to 2 decimals. None without checks."""
    if not total:
        return None
    return round(operational / total * 100, 2)


async def _latest_checks(session: AsyncSession) -> Dict[int, StatusCheck]:
    """Most recent status check per service."""
    latest = (
        select(
            StatusCheck.service_id,
            func.max(StatusCheck.checked_at).label("checked_at"),
        )
        .group_by(StatusCheck.service_id)
        .subquery()
    )
    result = await session.execute(
        select(StatusCheck)
        .join(
            latest,
            (StatusCheck.service_id == latest.c.service_id)
            & (StatusCheck.checked_at == latest.c.checked_at),
        )
        .order_by(StatusCheck.id.desc())
    )
    checks: Dict[int, StatusCheck] = {}
    for check in result.scalars().all():
        # Same timestamp twice: keep the row written last
        checks.setdefault(check.service_id, check)
    return checks


async def list_services_with_status(
    session: AsyncSession,
    now: Optional[datetime] = None,
) -> List[ServiceWithStatus]:
    """Active services with current status, 30-day uptime and active incident count."""
    cutoff = (now or utcnow()) - timedelta(days=UPTIME_WINDOW_DAYS)

    services_result = await session.execute(
        select(Service).where(Service.is_active.is_(True)).order_by(Service.name)
    )
    services = services_result.scalars().all()

    latest = await _latest_checks(session)

    uptime_result = await session.execute(
        select(
            StatusCheck.service_id,
            func.count(StatusCheck.id),
            func.sum(case((StatusCheck.status == "operational", 1), else_=0)),
        )
        .where(StatusCheck.checked_at >= cutoff)
        .group_by(StatusCheck.service_id)
    )
    uptime = {
        service_id: uptime_percentage(int(ok or 0), int(total or 0))
        for service_id, total, ok in uptime_result.all()
    }

    incidents_result = await session.execute(
        select(Incident.service_id, func.count(Incident.id))
        .where(Incident.status != "resolved")
        .group_by(Incident.service_id)
    )
    active_incidents = dict(incidents_result.all())

    response = []
    for service in services:
        check = latest.get(service.id)
        response.append(ServiceWithStatus(
            **ServiceResponse.model_validate(service).model_dump(),
            current_status=check.status if check else "unknown",
            last_checked=check.checked_at if check else None,
            uptime_percentage=uptime.get(service.id),
            active_incidents=active_incidents.get(service.id, 0),
        ))
    return response


async def incidents_with_updates(
    session: AsyncSession,
    service_id: int,
    limit: Optional[int] = None,
) -> List[IncidentResponse]:
    """Incidents of a service, newest first, each with its updates."""
    query = (
        select(Incident)
        .where(Incident.service_id == service_id)
        .order_by(Incident.started_at.desc(), Incident.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    incidents = (await session.execute(query)).scalars().all()

    updates_by_incident: Dict[int, List[IncidentUpdateResponse]] = defaultdict(list)
    if incidents:
        updates_result = await session.execute(
            select(IncidentUpdate)
            .where(IncidentUpdate.incident_id.in_([i.id for i in incidents]))
            .order_by(IncidentUpdate.created_at.desc(), IncidentUpdate.id.desc())
        )
        for update in updates_result.scalars().all():
            updates_by_incident[update.incident_id].append(IncidentUpdateResponse.model_validate(update))

    return [
        IncidentResponse(
            id=incident.id,
            service_id=incident.service_id,
            title=incident.title,
            description=incident.description,
            status=incident.status,
            severity=incident.severity,
            started_at=incident.started_at,
            resolved_at=incident.resolved_at,
            created_at=incident.created_at,
            updated_at=incident.updated_at,
            updates=updates_by_incident.get(incident.id, []),
        )
        for incident in incidents
    ]


async def get_service_detail(
    session: AsyncSession,
    service_id: int,
    now: Optional[datetime] = None,
) -> Optional[ServiceDetail]:
    """Service with its 30-day history and last 10 incidents, or None if missing."""
    service = await session.get(Service, service_id)
    if service is None:
        return None

    since = (now or utcnow()) - timedelta(days=UPTIME_WINDOW_DAYS)
    history = await history_store.query(session, service_id, since)
    incidents = await incidents_with_updates(session, service_id, limit=DETAIL_INCIDENT_LIMIT)

    return ServiceDetail(
        service=ServiceResponse.model_validate(service),
        history=[StatusCheckResponse.model_validate(check) for check in history],
        incidents=incidents,
    )


def _fallback_reason(started_at: Optional[datetime], service_name: str) -> str:
    stamp = started_at.isoformat() if started_at else ""
    return pick_deterministic(f"{stamp}|{service_name}")


async def get_active_incidents_summary(session: AsyncSession) -> ActiveIncidentsSummary:
    """Active incident count, latest start, affected services and their reasons."""
    result = await session.execute(
        select(Service.name, Incident.started_at, AnnouncementReason.reason_text)
        .join(Service, Service.id == Incident.service_id)
        .outerjoin(AnnouncementReason, AnnouncementReason.incident_id == Incident.id)
        .where(Incident.status != "resolved")
        .order_by(Service.name, Incident.started_at.desc())
    )
    rows: Sequence = result.all()

    reasons = [
        ServiceReason(
            service=name,
            reason=reason_text or _fallback_reason(started_at, name),
        )
        for name, started_at, reason_text in rows
    ]

    return ActiveIncidentsSummary(
        active_count=len(rows),
        latest_started_at=max((started_at for _, started_at, _ in rows), default=None),
        affected_services=sorted({name for name, _, _ in rows}),
        reasons=reasons,
    )
