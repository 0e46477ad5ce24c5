"""Incident models - downtime incidents and their timeline."""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.time_utils import utcnow


class Incident(Base):
    """A downtime incident for a service.
    
    At most one incident per service may be in a non-resolved state; the
    partial unique index enforces it at the database level.
    """
    
    __tablename__ = "incidents"
    __table_args__ = (
        Index(
            "uq_incidents_one_active",
            "service_id",
            unique=True,
            sqlite_where=text("status != 'resolved'"),
            postgresql_where=text("status != 'resolved'"),
        ),
        Index("idx_incidents_started_at", "started_at"),
    )
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False)  # investigating, identified, monitoring, resolved
    severity = Column(String(20), nullable=False)  # minor, major, critical
    started_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # Relationships
    service = relationship("Service", back_populates="incidents")
    updates = relationship(
        "IncidentUpdate",
        back_populates="incident",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="IncidentUpdate.created_at.desc()",
    )


class IncidentUpdate(Base):
    """Append-only timeline entry for an incident."""
    
    __tablename__ = "incident_updates"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    
    # Relationship
    incident = relationship("Incident", back_populates="updates")
