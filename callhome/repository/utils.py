"""
Field conversions shared by the repository backends
"""

from datetime import datetime, timezone
from typing import List, Optional

def join_services(services: Optional[List[str]]) -> Optional[str]:
    if not services:
        return None
    return ",".join(services)

def split_services(services: Optional[str]) -> Optional[List[str]]:
    if not services:
        return None
    return services.split(",")

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps and convert aware ones to UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
