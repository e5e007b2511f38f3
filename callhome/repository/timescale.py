"""
Relational telemetry repository (TimescaleDB / PostgreSQL, SQLite for tests)
"""

import uuid

from sqlalchemy import literal
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, sessionmaker
import structlog

from callhome.core.errors import StorageError
from callhome.database.connection import check_database
from callhome.models.telemetry import Telemetry as TelemetryRow
from callhome.repository.base import TelemetryRepository
from callhome.repository.utils import as_utc, join_services, split_services
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryPage

logger = structlog.get_logger(__name__)

# Columns refreshed when a known IP reports again; id is never among them
UPDATABLE_FIELDS = ("longitude", "latitude", "version", "services", "last_seen", "country", "city")

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

class TimescaleTelemetryRepository(TelemetryRepository):
    """SQLAlchemy backed repository

    Upserts are a single ``INSERT ... ON CONFLICT (ip_address) DO UPDATE``
    statement, so concurrent saves for one IP serialize in the database.
    """

    name = "timescale"

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def upsert(self, telemetry: Telemetry) -> Telemetry:
        values = {
            "id": uuid.uuid4(),
            "ip_address": telemetry.ip_address,
            "longitude": telemetry.longitude,
            "latitude": telemetry.latitude,
            "version": telemetry.version,
            "services": join_services(telemetry.services),
            "last_seen": as_utc(telemetry.last_seen),
            "country": telemetry.country,
            "city": telemetry.city,
        }

        session: Session = self._session_factory()
        try:
            insert = _INSERTS[session.get_bind().dialect.name]
            stmt = insert(TelemetryRow).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["ip_address"],
                set_={field: stmt.excluded[field] for field in UPDATABLE_FIELDS},
            )
            session.execute(stmt)
            row = session.query(TelemetryRow).filter(TelemetryRow.ip_address == telemetry.ip_address).one()
            stored = self._to_schema(row)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to upsert telemetry", ip_address=telemetry.ip_address, error=str(e))
            raise StorageError(f"failed to save telemetry: {e}") from e
        finally:
            session.close()

        return stored

    def list(self, page_metadata: PageMetadata) -> TelemetryPage:
        session: Session = self._session_factory()
        try:
            query = self._apply_filters(session.query(TelemetryRow), page_metadata)

            # Get total count
            total = query.count()

            # Apply ordering and pagination
            rows = (
                query.order_by(TelemetryRow.last_seen.desc(), TelemetryRow.id.asc())
                .offset(page_metadata.offset)
                .limit(page_metadata.limit)
                .all()
            )
            records = [self._to_schema(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error("Failed to list telemetry", error=str(e))
            raise StorageError(f"failed to retrieve telemetry: {e}") from e
        finally:
            session.close()

        return TelemetryPage(
            total=total,
            offset=page_metadata.offset,
            limit=page_metadata.limit,
            records=records,
        )

    def ping(self) -> bool:
        session: Session = self._session_factory()
        try:
            return check_database(session.get_bind())
        finally:
            session.close()

    @staticmethod
    def _apply_filters(query: Query, pm: PageMetadata) -> Query:
        if pm.ip_address:
            query = query.filter(TelemetryRow.ip_address == pm.ip_address)
        if pm.version:
            query = query.filter(TelemetryRow.version == pm.version)
        if pm.service:
            # Exact membership in the comma separated list
            wrapped = literal(",") + TelemetryRow.services + literal(",")
            query = query.filter(wrapped.like(f"%,{_escape_like(pm.service)},%", escape="\\"))
        if pm.country:
            query = query.filter(TelemetryRow.country == pm.country)
        if pm.city:
            query = query.filter(TelemetryRow.city == pm.city)
        if pm.from_time:
            query = query.filter(TelemetryRow.last_seen >= as_utc(pm.from_time))
        if pm.to_time:
            query = query.filter(TelemetryRow.last_seen <= as_utc(pm.to_time))
        return query

    @staticmethod
    def _to_schema(row: TelemetryRow) -> Telemetry:
        return Telemetry(
            id=row.id,
            ip_address=row.ip_address,
            longitude=row.longitude,
            latitude=row.latitude,
            version=row.version,
            services=split_services(row.services),
            last_seen=as_utc(row.last_seen),
            country=row.country,
            city=row.city,
        )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
