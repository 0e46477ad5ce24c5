"""Service model - websites/services being monitored."""
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.time_utils import utcnow


class Service(Base):
    """A monitored website or HTTP(S) service."""
    
    __tablename__ = "services"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    url = Column(String(500), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    check_interval = Column(Integer, nullable=False, default=420)  # seconds
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # Relationships
    checks = relationship("StatusCheck", back_populates="service", cascade="all, delete-orphan", passive_deletes=True)
    incidents = relationship("Incident", back_populates="service", cascade="all, delete-orphan", passive_deletes=True)
    
    def __repr__(self) -> str:
        return f"<Service {self.id} {self.name!r}>"
