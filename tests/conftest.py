import pytest
from callhome.repository.timescale import TimescaleTelemetryRepository
from callhome.schemas.telemetry import Telemetry
from tests.fakes import FakeResolver, FakeSheetsService, TickingClock, sqlite_session_factory

@pytest.fixture
def sqlite_sessions():
    engine, session_factory = sqlite_session_factory()
    yield session_factory
    engine.dispose()

@pytest.fixture
def timescale_repository(sqlite_sessions):
    return TimescaleTelemetryRepository(sqlite_sessions)

@pytest.fixture
def fake_resolver():
    return FakeResolver()

@pytest.fixture
def clock():
    return TickingClock()

@pytest.fixture
def fake_sheets_service():
    return FakeSheetsService()

@pytest.fixture
def make_telemetry(clock):
    """Build enriched records as the service hands them to a repository"""
    def factory(ip_address, **fields):
        fields.setdefault("last_seen", clock())
        return Telemetry(ip_address=ip_address, **fields)
    return factory

@pytest.fixture
def mock_env_vars(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN", "test_token")
    monkeypatch.setenv("DB_HOST", "localhost")
    monkeypatch.setenv("DB_PORT", "5432")
    monkeypatch.setenv("DB_NAME", "test_db")
    monkeypatch.setenv("DB_USER", "test_user")
    monkeypatch.setenv("DB_PASSWORD", "test_password")
    monkeypatch.setenv("GEO_DB_PATH", "/data/GeoLite2-City.mmdb")
