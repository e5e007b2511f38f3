"""
Telemetry model for phone-home records
"""

from sqlalchemy import Column, String, DateTime, Float, Text, Uuid
from callhome.database.connection import Base
import uuid

class Telemetry(Base):
    """One record per deployment instance, keyed by IP address"""

    __tablename__ = "telemetry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ip_address = Column(String(45), unique=True, nullable=False, index=True)
    longitude = Column(Float, nullable=False, default=0.0)
    latitude = Column(Float, nullable=False, default=0.0)
    version = Column(String(100))
    services = Column(Text)  # comma separated service names
    last_seen = Column(DateTime(timezone=True), nullable=False, index=True)
    country = Column(String(100))
    city = Column(String(255))

    def __repr__(self):
        return f"<Telemetry(ip_address={self.ip_address}, version={self.version}, last_seen={self.last_seen})>"
