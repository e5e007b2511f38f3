"""
Telemetry Pydantic schemas
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
from uuid import UUID

class TelemetryBase(BaseModel):
    """Fields reported by a deployment"""
    version: Optional[str] = Field(None, description="Software version of the reporting instance")
    services: Optional[List[str]] = Field(None, description="Services active on the reporting instance")

    @field_validator("services", mode="before")
    @classmethod
    def split_services(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

class TelemetryCreate(TelemetryBase):
    """Schema for a phone-home request"""
    ip_address: Optional[str] = Field(None, description="Instance IP address, taken from the request when omitted")

class Telemetry(TelemetryBase):
    """A stored telemetry record"""
    id: Optional[UUID] = None
    ip_address: str = Field(..., description="Natural key of the record")
    longitude: float = 0.0
    latitude: float = 0.0
    last_seen: Optional[datetime] = None
    country: Optional[str] = None
    city: Optional[str] = None

class PageMetadata(BaseModel):
    """Pagination request with optional filters"""
    offset: int = Field(0, description="Number of records to skip")
    limit: Optional[int] = Field(None, description="Page size, default used when zero or missing")
    ip_address: Optional[str] = None
    version: Optional[str] = None
    service: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None

class TelemetryPage(BaseModel):
    """Schema for telemetry list response"""
    model_config = ConfigDict(populate_by_name=True)

    total: int
    offset: int
    limit: int
    records: List[Telemetry] = Field(..., alias="telemetry")
