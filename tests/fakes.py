"""
Test doubles shared by the test modules
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from callhome.database.connection import Base
from callhome.geo.resolver import GeoInfo
from callhome.models import Telemetry  # noqa: F401 registers the table
from callhome.repository.base import TelemetryRepository
from callhome.schemas.telemetry import PageMetadata, TelemetryPage

GOOGLE_DNS = GeoInfo(country="US", city=None, longitude=-97.822, latitude=37.751)
CLOUDFLARE_DNS = GeoInfo(country="AU", city="Sydney", longitude=151.2, latitude=-33.86)


def sqlite_session_factory() -> Tuple[Engine, sessionmaker]:
    """In-memory SQLite database shared across threads"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeResolver:
    """Geo resolver answering from a fixed table"""

    def __init__(self, locations: Optional[Dict[str, GeoInfo]] = None, healthy: bool = True):
        self.locations = locations if locations is not None else {"8.8.8.8": GOOGLE_DNS, "1.1.1.1": CLOUDFLARE_DNS}
        self.healthy = healthy
        self.calls = []

    def resolve(self, ip_address: str) -> Optional[GeoInfo]:
        self.calls.append(ip_address)
        return self.locations.get(ip_address)

    def healthcheck(self) -> bool:
        return self.healthy

    def close(self) -> None:
        pass


class TickingClock:
    """Clock advancing one second per call"""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc), step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


class RecordingRepository(TelemetryRepository):
    """Repository remembering the page requests it served"""

    def __init__(self, name: str):
        self.name = name
        self.pages = []

    def upsert(self, telemetry):
        raise AssertionError(f"{self.name} repository must not receive saves")

    def list(self, page_metadata: PageMetadata) -> TelemetryPage:
        self.pages.append(page_metadata)
        return TelemetryPage(total=0, offset=page_metadata.offset, limit=page_metadata.limit, records=[])

    def ping(self) -> bool:
        return True


class _Request:
    def __init__(self, service: "FakeSheetsService", operation):
        self._service = service
        self._operation = operation

    def execute(self):
        if self._service.error is not None:
            raise self._service.error
        return self._operation()


class _Values:
    def __init__(self, service: "FakeSheetsService"):
        self._service = service

    def get(self, spreadsheetId, range, valueRenderOption=None):
        svc = self._service
        svc.calls.append(("get", range))

        def operation():
            if range.endswith("A1:I1"):
                return {"values": [list(svc.header)]} if svc.header else {}
            return {"values": [list(row) for row in svc.rows]} if svc.rows else {}

        return _Request(svc, operation)

    def update(self, spreadsheetId, range, valueInputOption, body):
        svc = self._service
        svc.calls.append(("update", range))

        def operation():
            if range.endswith("A1:I1"):
                svc.header = body["values"][0]
            else:
                row_number = int(range.split("!A", 1)[1].split(":")[0])
                svc.rows[row_number - 2] = body["values"][0]
            return {}

        return _Request(svc, operation)

    def append(self, spreadsheetId, range, valueInputOption, insertDataOption, body):
        svc = self._service
        svc.calls.append(("append", range))

        def operation():
            svc.rows.extend(body["values"])
            return {}

        return _Request(svc, operation)


class _Spreadsheets:
    def __init__(self, service: "FakeSheetsService"):
        self._service = service

    def get(self, spreadsheetId, fields=None):
        svc = self._service
        return _Request(svc, lambda: {"spreadsheetId": spreadsheetId, "sheets": svc.sheets})

    def values(self):
        return _Values(self._service)


class FakeSheetsService:
    """In-memory stand-in for the Sheets v4 API resource"""

    def __init__(self, title: str = "Telemetry", sheet_id: int = 0):
        self.sheets = [{"properties": {"sheetId": sheet_id, "title": title}}]
        self.header = []
        self.rows = []
        self.calls = []
        self.error = None

    def spreadsheets(self):
        return _Spreadsheets(self)
