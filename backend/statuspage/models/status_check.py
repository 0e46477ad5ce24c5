"""StatusCheck model - probe results, kept for 30 days."""
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.time_utils import utcnow


class StatusCheck(Base):
    """Result of one probe against a service. Never updated once written."""
    
    __tablename__ = "status_checks"
    __table_args__ = (
        Index("idx_status_checks_service_checked", "service_id", "checked_at"),
        Index("idx_status_checks_checked_at", "checked_at"),
    )
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False)  # operational, degraded, down
    response_time_ms = Column(Integer, nullable=True)
    status_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    checked_at = Column(DateTime, nullable=False, default=utcnow)
    
    # Relationship
    service = relationship("Service", back_populates="checks")
