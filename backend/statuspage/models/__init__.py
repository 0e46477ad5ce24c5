"""Database models."""
from .service import Service
from .status_check import StatusCheck
from .incident import Incident, IncidentUpdate
from .announcement import AnnouncementReasonTemplate, AnnouncementReason

__all__ = [
    "Service",
    "StatusCheck",
    "Incident",
    "IncidentUpdate",
    "AnnouncementReasonTemplate",
    "AnnouncementReason",
]
