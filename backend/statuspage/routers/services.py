"""Service API endpoints: public status reads and admin CRUD."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Incident, Service
from ..schemas.incident import IncidentCreate, IncidentResponse
from ..schemas.service import ServiceCreate, ServiceDetail, ServiceResponse, ServiceUpdate, ServiceWithStatus
from ..services.reconciler import active_incident_filter
from ..services.status_queries import get_service_detail, incidents_with_updates, list_services_with_status
from ..utils.auth import verify_admin
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/services", tags=["services"])


async def _get_service_or_404(db: AsyncSession, service_id: int) -> Service:
    service = await db.get(Service, service_id)
    if service is None:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


@router.get("", response_model=List[ServiceWithStatus])
async def list_services(db: AsyncSession = Depends(get_db)):
    """List active services with their current status and 30-day uptime."""
    return await list_services_with_status(db)


@router.post("", response_model=ServiceResponse, status_code=201, dependencies=[Depends(verify_admin)])
async def create_service(data: ServiceCreate, db: AsyncSession = Depends(get_db)):
    """Create a new monitored service."""
    service = Service(
        name=data.name,
        url=data.url,
        description=data.description,
        check_interval=data.check_interval,
        is_active=data.is_active,
    )
    db.add(service)
    try:
        await retry_on_lock(db.commit)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A service with this URL already exists")

    await db.refresh(service)
    logger.info(f"Created service {service.id} ({service.name})")
    return service


@router.get("/{service_id}", response_model=ServiceDetail)
async def get_service(service_id: int, db: AsyncSession = Depends(get_db)):
    """Get a service with its 30-day history and latest incidents."""
    detail = await get_service_detail(db, service_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Service not found")
    return detail


@router.put("/{service_id}", response_model=ServiceResponse, dependencies=[Depends(verify_admin)])
async def update_service(service_id: int, data: ServiceUpdate, db: AsyncSession = Depends(get_db)):
    """Update a service."""
    service = await _get_service_or_404(db, service_id)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(service, field, value)

    try:
        await retry_on_lock(db.commit)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A service with this URL already exists")

    await db.refresh(service)
    return service


@router.delete("/{service_id}", status_code=204, dependencies=[Depends(verify_admin)])
async def delete_service(service_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a service together with its history and incidents."""
    service = await _get_service_or_404(db, service_id)
    await db.delete(service)
    await retry_on_lock(db.commit)
    logger.info(f"Deleted service {service_id}")


@router.get("/{service_id}/incidents", response_model=List[IncidentResponse])
async def list_incidents(service_id: int, db: AsyncSession = Depends(get_db)):
    """All incidents of a service, newest first, with their updates."""
    await _get_service_or_404(db, service_id)
    return await incidents_with_updates(db, service_id)


@router.post(
    "/{service_id}/incidents",
    response_model=IncidentResponse,
    status_code=201,
    dependencies=[Depends(verify_admin)],
)
async def create_incident(service_id: int, data: IncidentCreate, db: AsyncSession = Depends(get_db)):
    """Open an incident by hand. Only one incident per service may be active."""
    await _get_service_or_404(db, service_id)

    existing = await db.execute(select(Incident.id).where(*active_incident_filter(service_id)))
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Service already has an active incident")

    incident = Incident(
        service_id=service_id,
        title=data.title,
        description=data.description,
        status=data.status,
        severity=data.severity,
        started_at=utcnow(),
    )
    db.add(incident)
    try:
        await retry_on_lock(db.commit)
    except IntegrityError:
        # Opened by a check cycle in the meantime
        await db.rollback()
        raise HTTPException(status_code=409, detail="Service already has an active incident")

    logger.info(f"Manual incident {incident.id} opened for service {service_id}")
    return IncidentResponse(
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
        updates=[],
    )
