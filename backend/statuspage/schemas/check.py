"""Schemas for check cycles and user reports."""
from typing import List, Optional

from pydantic import BaseModel


class CycleResultEntry(BaseModel):
    """Outcome for one service in a cycle."""
    service: str
    status: Optional[str] = None  # None when the probe itself failed
    response_time: Optional[int] = None
    error: Optional[str] = None


class CycleResponse(BaseModel):
    """Response of a check cycle trigger."""
    success: bool = True
    checked: int
    results: List[CycleResultEntry]


class ReportDownRequest(BaseModel):
    """A visitor reporting a service as down."""
    service_id: int
    service_name: str
    user_agent: Optional[str] = None


class ReportDownResponse(BaseModel):
    success: bool
    message: str
