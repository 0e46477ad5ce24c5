"""Service schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .incident import IncidentResponse


class ServiceCreate(BaseModel):
    """Schema for creating a new service."""
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    check_interval: int = Field(default=420, ge=10, le=86400)
    is_active: bool = True


class ServiceUpdate(BaseModel):
    """Schema for updating a service. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    url: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    check_interval: Optional[int] = Field(None, ge=10, le=86400)
    is_active: Optional[bool] = None


class ServiceResponse(BaseModel):
    """Schema for a service in API responses."""
    id: int
    name: str
    url: str
    description: Optional[str] = None
    is_active: bool
    check_interval: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ServiceWithStatus(ServiceResponse):
    """Service with its current status and 30-day uptime."""
    current_status: str  # operational, degraded, down, unknown
    last_checked: Optional[datetime] = None
    uptime_percentage: Optional[float] = None
    active_incidents: int = 0


class StatusCheckResponse(BaseModel):
    """A stored probe result."""
    id: int
    service_id: int
    status: str
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    checked_at: datetime
    
    class Config:
        from_attributes = True


class ServiceDetail(BaseModel):
    """Service with 30-day history and its latest incidents."""
    service: ServiceResponse
    history: List[StatusCheckResponse]
    incidents: List[IncidentResponse]
