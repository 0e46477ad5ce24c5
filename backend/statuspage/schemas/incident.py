"""Incident schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class IncidentUpdateResponse(BaseModel):
    """Timeline entry of an incident."""
    id: int
    incident_id: int
    message: str
    status: str
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class IncidentResponse(BaseModel):
    """Incident with its updates, newest first."""
    id: int
    service_id: int
    title: str
    description: Optional[str] = None
    status: str  # investigating, identified, monitoring, resolved
    severity: str  # minor, major, critical
    started_at: datetime
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    updates: List[IncidentUpdateResponse] = []


class IncidentCreate(BaseModel):
    """Schema for opening an incident by hand."""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    severity: str = Field(default="major", pattern="^(minor|major|critical)$")
    status: str = Field(default="investigating", pattern="^(investigating|identified|monitoring)$")


class ServiceReason(BaseModel):
    """Why a service is shown as down."""
    service: str
    reason: str


class ActiveIncidentsSummary(BaseModel):
    """Data for the outage announcement banner."""
    active_count: int
    latest_started_at: Optional[datetime] = None
    affected_services: List[str]
    reasons: List[ServiceReason]
