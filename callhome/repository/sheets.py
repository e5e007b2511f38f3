"""Google Sheets telemetry repository.

Stores one telemetry record per spreadsheet row. Row 1 holds the header and
columns A:I hold the persisted record shape. The Sheets API has no
transactions, so every read-modify-write runs under a process-local lock;
the same lock keeps the (non thread-safe) API resource to one thread at a
time.
"""

from datetime import datetime, timezone
from threading import Lock
from typing import Any, List, Optional, Tuple
import uuid

import structlog
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from callhome.core.errors import StartupError, StorageError
from callhome.repository.base import TelemetryRepository
from callhome.repository.utils import as_utc, join_services, split_services
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryPage

logger = structlog.get_logger(__name__)

SHEETS_FULL_SCOPE = "https://www.googleapis.com/auth/spreadsheets"

VALUE_INPUT_OPTION_RAW = "RAW"
INSERT_DATA_OPTION_INSERT_ROWS = "INSERT_ROWS"
VALUE_RENDER_OPTION_UNFORMATTED = "UNFORMATTED_VALUE"

HEADER = ["id", "ip_address", "longitude", "latitude", "version", "services", "last_seen", "country", "city"]

_API_ERRORS = (HttpError, GoogleAuthError, OSError)


class SheetsTelemetryRepository(TelemetryRepository):
    """Telemetry repository backed by a single sheet of a spreadsheet.

    Args:
        service: Authenticated Sheets v4 API resource
        spreadsheet_id: The spreadsheet ID
        sheet_id: Numeric id of the sheet (tab) holding the records

    Raises:
        StartupError: the sheet cannot be found or the API is unreachable
    """

    name = "sheets"

    def __init__(self, service: Resource, spreadsheet_id: str, sheet_id: int = 0) -> None:
        self._service = service
        self._spreadsheet_id = spreadsheet_id
        self._lock = Lock()
        self._logger = logger.bind(component="sheets_repository", spreadsheet_id=spreadsheet_id, sheet_id=sheet_id)

        try:
            self._title = self._resolve_title(sheet_id)
            self._ensure_header()
        except _API_ERRORS as e:
            self._logger.error("Failed to open spreadsheet", error=str(e))
            raise StartupError(f"cannot open spreadsheet {spreadsheet_id}: {e}") from e

    @classmethod
    def from_credentials_file(cls, credentials_file: str, spreadsheet_id: str, sheet_id: int = 0) -> "SheetsTelemetryRepository":
        """Build the repository from a service account key file."""
        try:
            creds = service_account.Credentials.from_service_account_file(
                credentials_file, scopes=[SHEETS_FULL_SCOPE]
            )
            service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        except (ValueError, OSError, GoogleAuthError) as e:
            logger.error("Failed to load Google credentials", credentials_file=credentials_file, error=str(e))
            raise StartupError(f"cannot load Google credentials from {credentials_file}: {e}") from e
        return cls(service, spreadsheet_id, sheet_id)

    # ========================================================================
    # Repository operations
    # ========================================================================

    def upsert(self, telemetry: Telemetry) -> Telemetry:
        with self._lock:
            try:
                rows = self._read_rows()
                position, existing = self._find(rows, telemetry.ip_address)

                stored = telemetry.model_copy(update={
                    "id": existing.id if existing else uuid.uuid4(),
                    "last_seen": as_utc(telemetry.last_seen),
                })
                values = [self._to_row(stored)]

                if existing is None:
                    self._values().append(
                        spreadsheetId=self._spreadsheet_id,
                        range=self._range("A:I"),
                        valueInputOption=VALUE_INPUT_OPTION_RAW,
                        insertDataOption=INSERT_DATA_OPTION_INSERT_ROWS,
                        body={"values": values},
                    ).execute()
                else:
                    # Data starts on row 2
                    row_number = position + 2
                    self._values().update(
                        spreadsheetId=self._spreadsheet_id,
                        range=self._range(f"A{row_number}:I{row_number}"),
                        valueInputOption=VALUE_INPUT_OPTION_RAW,
                        body={"values": values},
                    ).execute()
            except _API_ERRORS as e:
                self._logger.error("Failed to upsert telemetry", ip_address=telemetry.ip_address, error=str(e))
                raise StorageError(f"failed to save telemetry: {e}") from e

        return stored

    def list(self, page_metadata: PageMetadata) -> TelemetryPage:
        with self._lock:
            try:
                rows = self._read_rows()
            except _API_ERRORS as e:
                self._logger.error("Failed to list telemetry", error=str(e))
                raise StorageError(f"failed to retrieve telemetry: {e}") from e

        records = [record for record in rows if _matches(record, page_metadata)]
        # Two stable sorts: id ascending breaks ties of last_seen descending
        records.sort(key=lambda record: str(record.id))
        records.sort(key=_last_seen_key, reverse=True)

        start = page_metadata.offset
        return TelemetryPage(
            total=len(records),
            offset=page_metadata.offset,
            limit=page_metadata.limit,
            records=records[start:start + page_metadata.limit],
        )

    def ping(self) -> bool:
        with self._lock:
            try:
                self._service.spreadsheets().get(
                    spreadsheetId=self._spreadsheet_id, fields="spreadsheetId"
                ).execute()
            except _API_ERRORS as e:
                self._logger.error("Spreadsheet health check failed", error=str(e))
                return False
        return True

    # ========================================================================
    # Helpers
    # ========================================================================

    def _values(self) -> Any:
        return self._service.spreadsheets().values()

    def _range(self, cells: str) -> str:
        return f"'{self._title}'!{cells}"

    def _resolve_title(self, sheet_id: int) -> str:
        spreadsheet = self._service.spreadsheets().get(
            spreadsheetId=self._spreadsheet_id, fields="sheets.properties"
        ).execute()
        for sheet in spreadsheet.get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("sheetId") == sheet_id:
                return properties["title"]
        raise StartupError(f"sheet {sheet_id} not found in spreadsheet {self._spreadsheet_id}")

    def _ensure_header(self) -> None:
        result = self._values().get(
            spreadsheetId=self._spreadsheet_id, range=self._range("A1:I1")
        ).execute()
        if not result.get("values"):
            self._values().update(
                spreadsheetId=self._spreadsheet_id,
                range=self._range("A1:I1"),
                valueInputOption=VALUE_INPUT_OPTION_RAW,
                body={"values": [HEADER]},
            ).execute()
            self._logger.info("Spreadsheet header written")

    def _read_rows(self) -> List[Telemetry]:
        result = self._values().get(
            spreadsheetId=self._spreadsheet_id,
            range=self._range("A2:I"),
            valueRenderOption=VALUE_RENDER_OPTION_UNFORMATTED,
        ).execute()
        records = []
        for row_number, row in enumerate(result.get("values", []), start=2):
            try:
                records.append(self._from_row(row))
            except (ValueError, TypeError) as e:
                self._logger.error("Malformed telemetry row", row_number=row_number, error=str(e))
                raise StorageError(f"malformed telemetry in row {row_number}: {e}") from e
        return records

    @staticmethod
    def _find(rows: List[Telemetry], ip_address: str) -> Tuple[int, Optional[Telemetry]]:
        for position, record in enumerate(rows):
            if record.ip_address == ip_address:
                return position, record
        return len(rows), None

    @staticmethod
    def _to_row(telemetry: Telemetry) -> List[Any]:
        return [
            str(telemetry.id),
            telemetry.ip_address,
            telemetry.longitude,
            telemetry.latitude,
            telemetry.version or "",
            join_services(telemetry.services) or "",
            telemetry.last_seen.isoformat() if telemetry.last_seen else "",
            telemetry.country or "",
            telemetry.city or "",
        ]

    @staticmethod
    def _from_row(row: List[Any]) -> Telemetry:
        # The API drops trailing empty cells
        cells = list(row) + [""] * (len(HEADER) - len(row))
        record_id, ip_address, longitude, latitude, version, services, last_seen, country, city = cells[:len(HEADER)]
        return Telemetry(
            id=uuid.UUID(str(record_id)) if record_id else None,
            ip_address=str(ip_address),
            longitude=float(longitude or 0.0),
            latitude=float(latitude or 0.0),
            version=str(version) if version != "" else None,
            services=split_services(str(services)) if services else None,
            last_seen=as_utc(datetime.fromisoformat(last_seen)) if last_seen else None,
            country=country or None,
            city=city or None,
        )


def _last_seen_key(record: Telemetry) -> datetime:
    return record.last_seen or datetime.min.replace(tzinfo=timezone.utc)


def _matches(record: Telemetry, pm: PageMetadata) -> bool:
    if pm.ip_address and record.ip_address != pm.ip_address:
        return False
    if pm.version and record.version != pm.version:
        return False
    if pm.service and pm.service not in (record.services or []):
        return False
    if pm.country and record.country != pm.country:
        return False
    if pm.city and record.city != pm.city:
        return False
    if pm.from_time and (record.last_seen is None or record.last_seen < as_utc(pm.from_time)):
        return False
    if pm.to_time and (record.last_seen is None or record.last_seen > as_utc(pm.to_time)):
        return False
    return True
