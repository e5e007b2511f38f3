"""
Request helpers shared by the API routes
"""

from typing import Optional

from fastapi import Request

from callhome.homing.service import Service

BEARER_PREFIX = "Bearer "

def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the bearer token from an Authorization header, None when absent"""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX):].strip() or None

def get_client_ip(request: Request) -> Optional[str]:
    """Client IP address, considering proxies"""
    # X-Forwarded-For may hold "client, proxy1, proxy2"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host
    return None

def get_service(request: Request) -> Service:
    """Service instance built at startup"""
    return request.app.state.service
