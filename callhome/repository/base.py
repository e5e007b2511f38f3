"""
Repository contract for telemetry storage
"""

from abc import ABC, abstractmethod

from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryPage

class TelemetryRepository(ABC):
    """Durable telemetry store keyed by IP address.

    Backend failures are raised as StorageError chained to the original
    exception. Implementations do not retry.
    """

    name: str = ""

    @abstractmethod
    def upsert(self, telemetry: Telemetry) -> Telemetry:
        """Insert a record or update the one with the same IP address.

        The id is generated on insert and never changed on update. Returns the
        stored record.
        """

    @abstractmethod
    def list(self, page_metadata: PageMetadata) -> TelemetryPage:
        """Return one page of records ordered by last_seen descending.

        ``total`` counts every record matching the filters, regardless of
        offset and limit.
        """

    @abstractmethod
    def ping(self) -> bool:
        """Check that the backend is reachable"""
