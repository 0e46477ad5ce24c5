"""Announcement reason models - why a service is shown as down."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from ..database import Base
from ..utils.time_utils import utcnow


class AnnouncementReasonTemplate(Base):
    """Candidate outage explanation with a relative selection weight."""
    
    __tablename__ = "announcement_reason_templates"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False)
    label = Column(Text, nullable=False)
    weight = Column(Integer, default=1)


class AnnouncementReason(Base):
    """Reason shown for an active incident. Deleted when the incident resolves."""
    
    __tablename__ = "announcement_reasons"
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, unique=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)
    reason_code = Column(String(64), nullable=False)
    reason_text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# Default template pool: (code, label, weight)
DEFAULT_REASON_TEMPLATES = [
    ("POWER_OUTAGE", "Power outage affecting our data center", 3),
    ("NETWORK_MAINTENANCE", "Scheduled network maintenance in progress", 3),
    ("SERVER_MAINTENANCE", "Server maintenance and updates", 3),
    ("HARDWARE_FAILURE", "Hardware component failure - working on replacement", 3),
    ("ISP_ISSUE", "Internet service provider connectivity issue", 2),
    ("CAMPUS_NETWORK", "Campus network infrastructure disruption", 2),
    ("SERVER_OVERLOAD", "High traffic causing server resource constraints", 2),
    ("DATABASE_ISSUE", "Database connectivity or performance issue", 2),
    ("FIREWALL_CONFIG", "Firewall or security configuration update", 2),
    ("DNS_PROPAGATION", "DNS configuration changes propagating", 2),
    ("SSL_CERTIFICATE", "SSL certificate renewal or update", 1),
    ("COOLING_SYSTEM", "Data center cooling system maintenance", 1),
    ("BACKUP_RESTORE", "System backup or restore operation", 2),
    ("SOFTWARE_UPDATE", "Critical software patch deployment", 2),
    ("NETWORK_CONGESTION", "Network bandwidth congestion", 1),
    ("POWER_FLUCTUATION", "UPS/power system fluctuation", 2),
    ("ROUTER_CONFIG", "Router or switch configuration update", 1),
    ("UNEXPECTED_REBOOT", "Unexpected system reboot - investigating cause", 3),
]
