"""
Telemetry ingestion and retrieval endpoints
"""

from fastapi import APIRouter, Depends, Header, Query, Request
from typing import Optional
from datetime import datetime
import asyncio

from callhome.api.utils import extract_bearer_token, get_client_ip, get_service
from callhome.core.config import settings
from callhome.homing.service import Service
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryCreate, TelemetryPage

router = APIRouter()

@router.post("/telemetry", response_model=Telemetry, status_code=201)
async def save_telemetry(
    telemetry_data: TelemetryCreate,
    request: Request,
    svc: Service = Depends(get_service)
):
    """Record a phone-home event"""

    if not telemetry_data.ip_address:
        telemetry_data = telemetry_data.model_copy(update={"ip_address": get_client_ip(request)})

    return await asyncio.wait_for(svc.save(telemetry_data), timeout=settings.request_timeout)

@router.get("/telemetry", response_model=TelemetryPage)
async def get_telemetry(
    offset: int = Query(0),
    limit: Optional[int] = Query(None),
    repo: str = Query(""),
    ip_address: Optional[str] = Query(None),
    version: Optional[str] = Query(None),
    service: Optional[str] = Query(None),
    country: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    from_time: Optional[datetime] = Query(None, alias="from"),
    to_time: Optional[datetime] = Query(None, alias="to"),
    authorization: Optional[str] = Header(None),
    svc: Service = Depends(get_service)
):
    """Get a page of telemetry ordered by last seen, most recent first"""

    page_metadata = PageMetadata(
        offset=offset,
        limit=limit,
        ip_address=ip_address,
        version=version,
        service=service,
        country=country,
        city=city,
        from_time=from_time,
        to_time=to_time,
    )
    token = extract_bearer_token(authorization)

    return await asyncio.wait_for(svc.get_all(repo, token, page_metadata), timeout=settings.request_timeout)
