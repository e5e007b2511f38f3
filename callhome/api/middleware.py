"""
Logging and metrics decorators for the telemetry service
"""

from typing import Optional, Tuple
import time

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY
import structlog

from callhome.homing.service import Service
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryCreate, TelemetryPage

def make_metrics(namespace: str, subsystem: str, registry: CollectorRegistry = REGISTRY) -> Tuple[Counter, Histogram]:
    """Create the request counter and latency histogram for a service"""
    counter = Counter(
        "request_count",
        "Number of requests received.",
        ["method"],
        namespace=namespace,
        subsystem=subsystem,
        registry=registry,
    )
    latency = Histogram(
        "request_latency_seconds",
        "Total duration of requests in seconds.",
        ["method"],
        namespace=namespace,
        subsystem=subsystem,
        registry=registry,
    )
    return counter, latency

class LoggingMiddleware(Service):
    """Logs duration and outcome of every service call"""

    def __init__(self, svc: Service, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._svc = svc
        self._logger = logger or structlog.get_logger(__name__)

    async def save(self, telemetry: TelemetryCreate) -> Telemetry:
        begin = time.perf_counter()
        try:
            result = await self._svc.save(telemetry)
        except Exception as e:
            self._logger.warning(
                "Method save telemetry failed",
                took=time.perf_counter() - begin,
                ip_address=telemetry.ip_address,
                error=str(e),
            )
            raise
        self._logger.info(
            "Method save telemetry completed",
            took=time.perf_counter() - begin,
            ip_address=result.ip_address,
        )
        return result

    async def get_all(self, repo: str, token: Optional[str], page_metadata: PageMetadata) -> TelemetryPage:
        begin = time.perf_counter()
        try:
            page = await self._svc.get_all(repo, token, page_metadata)
        except Exception as e:
            self._logger.warning(
                "Method get all telemetry failed",
                took=time.perf_counter() - begin,
                repo=repo,
                error=str(e),
            )
            raise
        self._logger.info(
            "Method get all telemetry completed",
            took=time.perf_counter() - begin,
            repo=repo,
            total=page.total,
        )
        return page

class MetricsMiddleware(Service):
    """Counts requests and records their latency"""

    def __init__(self, svc: Service, counter: Counter, latency: Histogram):
        self._svc = svc
        self._counter = counter
        self._latency = latency

    async def save(self, telemetry: TelemetryCreate) -> Telemetry:
        begin = time.perf_counter()
        try:
            return await self._svc.save(telemetry)
        finally:
            self._observe("save", begin)

    async def get_all(self, repo: str, token: Optional[str], page_metadata: PageMetadata) -> TelemetryPage:
        begin = time.perf_counter()
        try:
            return await self._svc.get_all(repo, token, page_metadata)
        finally:
            self._observe("get_all", begin)

    def _observe(self, method: str, begin: float):
        self._counter.labels(method=method).inc()
        self._latency.labels(method=method).observe(time.perf_counter() - begin)
