"""Incident read endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.incident import ActiveIncidentsSummary
from ..services.status_queries import get_active_incidents_summary

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


@router.get("/active-summary", response_model=ActiveIncidentsSummary)
async def active_summary(db: AsyncSession = Depends(get_db)):
    """Active incidents for the outage banner."""
    return await get_active_incidents_summary(db)
