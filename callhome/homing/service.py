"""
Telemetry service: geo enrichment, upsert by IP and paginated reads
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional
import ipaddress

from fastapi.concurrency import run_in_threadpool
import structlog

from callhome.auth.authorizer import Authorizer
from callhome.core.errors import InvalidInputError
from callhome.geo.resolver import GeoResolver
from callhome.repository.base import TelemetryRepository
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryCreate, TelemetryPage

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

class Service(ABC):
    """Operations exposed to the transport layer"""

    @abstractmethod
    async def save(self, telemetry: TelemetryCreate) -> Telemetry:
        """Enrich and store a phone-home record"""

    @abstractmethod
    async def get_all(self, repo: str, token: Optional[str], page_metadata: PageMetadata) -> TelemetryPage:
        """Return one page of stored records"""

def normalize_ip(value: Optional[str]) -> str:
    """Validate an IP address and return its canonical text form"""
    if value is None or not value.strip():
        raise InvalidInputError("missing IP address")
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError as e:
        raise InvalidInputError(f"malformed IP address: {value}") from e

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class TelemetryService(Service):
    """Default Service implementation

    Saves always go to the primary repository. Reads can target any
    registered repository by name; an empty name selects the primary one.
    """

    def __init__(
        self,
        repository: TelemetryRepository,
        resolver: GeoResolver,
        authorizer: Authorizer,
        extra_repositories: Iterable[TelemetryRepository] = (),
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._repository = repository
        self._repositories: Dict[str, TelemetryRepository] = {repository.name: repository}
        for extra in extra_repositories:
            self._repositories.setdefault(extra.name, extra)
        self._resolver = resolver
        self._authorizer = authorizer
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._clock = clock

    async def save(self, telemetry: TelemetryCreate) -> Telemetry:
        ip_address = normalize_ip(telemetry.ip_address)

        record = Telemetry(
            ip_address=ip_address,
            version=telemetry.version,
            services=telemetry.services,
            last_seen=self._clock(),
        )

        geo = self._resolver.resolve(ip_address)
        if geo is None:
            logger.warning("Storing telemetry without location", ip_address=ip_address)
        else:
            record = record.model_copy(update=geo.to_dict())

        return await run_in_threadpool(self._repository.upsert, record)

    async def get_all(self, repo: str, token: Optional[str], page_metadata: PageMetadata) -> TelemetryPage:
        await run_in_threadpool(self._authorizer.authorize, token)

        repository = self._select(repo)
        page_metadata = self.normalize_page(page_metadata)
        return await run_in_threadpool(repository.list, page_metadata)

    def normalize_page(self, page_metadata: PageMetadata) -> PageMetadata:
        """Apply the default and maximum page size, reject negative values and canonicalise the IP filter"""
        if page_metadata.offset < 0:
            raise InvalidInputError(f"offset must not be negative, got {page_metadata.offset}")

        limit = page_metadata.limit
        if limit is not None and limit < 0:
            raise InvalidInputError(f"limit must not be negative, got {limit}")
        if not limit:
            limit = self._default_limit
        limit = min(limit, self._max_limit)

        update = {"limit": limit}
        if page_metadata.ip_address:
            # Stored addresses are canonical
            update["ip_address"] = normalize_ip(page_metadata.ip_address)

        return page_metadata.model_copy(update=update)

    def _select(self, repo: str) -> TelemetryRepository:
        if not repo:
            return self._repository
        try:
            return self._repositories[repo]
        except KeyError:
            raise InvalidInputError(f"unknown repository {repo!r}, expected one of {sorted(self._repositories)}")
