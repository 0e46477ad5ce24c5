"""Pydantic schemas for API request/response models."""
from .service import (
    ServiceCreate,
    ServiceUpdate,
    ServiceResponse,
    ServiceWithStatus,
    StatusCheckResponse,
    ServiceDetail,
)
from .incident import (
    IncidentCreate,
    IncidentResponse,
    IncidentUpdateResponse,
    ActiveIncidentsSummary,
    ServiceReason,
)
from .check import CycleResponse, CycleResultEntry, ReportDownRequest, ReportDownResponse
from .report import Report

__all__ = [
    "ServiceCreate",
    "ServiceUpdate",
    "ServiceResponse",
    "ServiceWithStatus",
    "StatusCheckResponse",
    "ServiceDetail",
    "IncidentCreate",
    "IncidentResponse",
    "IncidentUpdateResponse",
    "ActiveIncidentsSummary",
    "ServiceReason",
    "CycleResponse",
    "CycleResultEntry",
    "ReportDownRequest",
    "ReportDownResponse",
    "Report",
]
