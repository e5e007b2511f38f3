"""
Callhome Telemetry - FastAPI Application
Main entry point for the API server
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from typing import Dict
import asyncio
import logging
import uvicorn
import structlog
from contextlib import asynccontextmanager

from callhome import __version__
from callhome.api.middleware import LoggingMiddleware, MetricsMiddleware, make_metrics
from callhome.api.routes import health, telemetry
from callhome.auth.authorizer import build_authorizer
from callhome.core.config import Settings, settings
from callhome.core.errors import InvalidInputError, StartupError, StorageError, UnauthorizedError
from callhome.database.connection import SessionLocal, init_database
from callhome.geo.resolver import GeoResolver
from callhome.homing.service import Service, TelemetryService
from callhome.repository.base import TelemetryRepository
from callhome.repository.sheets import SheetsTelemetryRepository
from callhome.repository.timescale import TimescaleTelemetryRepository

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

SERVICE_NAME = "callhome"

# Registered once per process
counter, latency = make_metrics(SERVICE_NAME, "api")

async def build_repositories(cfg: Settings) -> Dict[str, TelemetryRepository]:
    """Create the configured repository backends, primary one included"""
    if cfg.repository not in (TimescaleTelemetryRepository.name, SheetsTelemetryRepository.name):
        raise StartupError(f"unknown repository {cfg.repository!r}")

    use_sheets = cfg.repository == SheetsTelemetryRepository.name or bool(cfg.spreadsheet_id)
    if use_sheets and not (cfg.spreadsheet_id and cfg.gcp_credentials_file):
        raise StartupError("SPREADSHEET_ID and GCP_CREDENTIALS_FILE are required for the sheets repository")

    repositories: Dict[str, TelemetryRepository] = {}

    try:
        await init_database()
        repositories[TimescaleTelemetryRepository.name] = TimescaleTelemetryRepository(SessionLocal)
    except Exception as e:
        if cfg.repository == TimescaleTelemetryRepository.name:
            raise StartupError(f"cannot initialize database: {e}") from e
        # Optional when another backend is primary
        logger.warning("Database unavailable, timescale repository not registered", error=str(e))

    if use_sheets:
        repositories[SheetsTelemetryRepository.name] = SheetsTelemetryRepository.from_credentials_file(
            cfg.gcp_credentials_file, cfg.spreadsheet_id, cfg.sheet_id
        )

    return repositories

def build_service(
    cfg: Settings,
    resolver: GeoResolver,
    repositories: Dict[str, TelemetryRepository],
) -> Service:
    """Create the telemetry service wrapped in metrics and logging"""
    svc: Service = TelemetryService(
        repositories[cfg.repository],
        resolver,
        build_authorizer(cfg),
        extra_repositories=repositories.values(),
        default_limit=cfg.default_page_limit,
        max_limit=cfg.max_page_limit,
    )
    svc = MetricsMiddleware(svc, counter, latency)
    svc = LoggingMiddleware(svc, structlog.get_logger("callhome.api"))
    return svc

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Callhome Telemetry API", repository=settings.repository)
    # Startup
    resolver = None
    if getattr(app.state, "service", None) is None:
        resolver = GeoResolver(settings.geo_db_path)
        try:
            repositories = await build_repositories(settings)
            app.state.service = build_service(settings, resolver, repositories)
        except Exception:
            resolver.close()
            raise
        app.state.resolver = resolver
        app.state.repositories = repositories
    yield
    # Shutdown
    if resolver is not None:
        resolver.close()
        app.state.service = None
    logger.info("Shutting down Callhome Telemetry API")

# Create FastAPI application
app = FastAPI(
    title="Callhome Telemetry API",
    description="Collects phone-home telemetry from deployments and serves it with geolocation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(telemetry.router, prefix="/api/v1", tags=["telemetry"])

# Prometheus exposition
app.mount("/metrics", make_asgi_app())

@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Callhome Telemetry API",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/health"
    }

@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"}
    )

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure", error=str(exc), path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Storage failure"})

@app.exception_handler(asyncio.TimeoutError)
async def timeout_handler(request: Request, exc: asyncio.TimeoutError):
    logger.warning("Request timed out", path=request.url.path)
    return JSONResponse(status_code=504, content={"detail": "Request timed out"})

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler"""
    logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    uvicorn.run(
        "callhome.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
