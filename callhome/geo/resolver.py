"""MaxMind GeoIP2 resolver for telemetry enrichment.

Resolves an IP address to country, city and coordinates using a local
GeoLite2/GeoIP2 City database. The database is opened once and shared
read-only by every request; lookups never touch the network.
"""

from dataclasses import dataclass
from typing import Optional

import geoip2.database
import structlog
from geoip2.errors import AddressNotFoundError, GeoIP2Error
from maxminddb import InvalidDatabaseError

from callhome.core.errors import StartupError

logger = structlog.get_logger(__name__)

HEALTHCHECK_IP = "8.8.8.8"


@dataclass(frozen=True)
class GeoInfo:
    """Geolocation attributes for an IP address."""

    country: Optional[str] = None
    city: Optional[str] = None
    longitude: float = 0.0
    latitude: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary format."""
        return {
            "country": self.country,
            "city": self.city,
            "longitude": self.longitude,
            "latitude": self.latitude,
        }


class GeoResolver:
    """Offline IP geolocation backed by a MaxMind City database.

    Args:
        db_path: Path to the ``.mmdb`` file

    Raises:
        StartupError: the file is missing, unreadable, or not a City database
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._logger = logger.bind(component="geo_resolver", db_path=db_path)
        try:
            self._reader = geoip2.database.Reader(db_path)
        except (OSError, ValueError, InvalidDatabaseError) as e:
            self._logger.error("Failed to open geo database", error=str(e))
            raise StartupError(f"cannot open geo database {db_path}: {e}") from e

        database_type = self._reader.metadata().database_type
        if "City" not in database_type:
            self._reader.close()
            raise StartupError(f"geo database {db_path} is {database_type}, expected a City database")
        self._logger.info("Geo database opened", database_type=database_type)

    def resolve(self, ip_address: str) -> Optional[GeoInfo]:
        """Look up an IP address.

        Returns:
            GeoInfo on a hit, None when the address is unknown, malformed,
            or the database cannot be read.
        """
        log = self._logger.bind(ip_address=ip_address)
        try:
            response = self._reader.city(ip_address)
        except AddressNotFoundError:
            log.warning("IP address not found in geo database")
            return None
        except ValueError as e:
            log.warning("Invalid IP address for geo lookup", error=str(e))
            return None
        except (GeoIP2Error, InvalidDatabaseError) as e:
            log.error("Geo database lookup failed", error=str(e))
            return None

        return GeoInfo(
            country=response.country.iso_code,
            city=response.city.name,
            longitude=response.location.longitude or 0.0,
            latitude=response.location.latitude or 0.0,
        )

    def healthcheck(self) -> bool:
        """Check that the database answers lookups."""
        return self.resolve(HEALTHCHECK_IP) is not None

    def close(self) -> None:
        self._reader.close()
        self._logger.info("Geo database closed")

    def __enter__(self) -> "GeoResolver":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
