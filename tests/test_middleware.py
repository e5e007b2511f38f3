import unittest
from unittest.mock import AsyncMock, MagicMock

from prometheus_client import CollectorRegistry

from callhome.api.middleware import LoggingMiddleware, MetricsMiddleware, make_metrics
from callhome.core.errors import StorageError, UnauthorizedError
from callhome.homing.service import Service
from callhome.schemas.telemetry import PageMetadata, Telemetry, TelemetryCreate, TelemetryPage

STORED = Telemetry(ip_address="8.8.8.8", version="1.2.0", country="US")
PAGE = TelemetryPage(total=1, offset=0, limit=10, records=[STORED])

def inner_service():
    svc = MagicMock(spec=Service)
    svc.save = AsyncMock(return_value=STORED)
    svc.get_all = AsyncMock(return_value=PAGE)
    return svc

class TestMetricsMiddleware(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.registry = CollectorRegistry()
        counter, latency = make_metrics("callhome", "api", registry=self.registry)
        self.inner = inner_service()
        self.svc = MetricsMiddleware(self.inner, counter, latency)

    def sample(self, name, method):
        return self.registry.get_sample_value(name, {"method": method})

    async def test_counts_and_times_calls(self):
        result = await self.svc.save(TelemetryCreate(ip_address="8.8.8.8"))
        page = await self.svc.get_all("", "token", PageMetadata(offset=0, limit=10))
        await self.svc.get_all("", "token", PageMetadata(offset=0, limit=10))

        self.assertIs(result, STORED)
        self.assertIs(page, PAGE)
        self.assertEqual(self.sample("callhome_api_request_count_total", "save"), 1)
        self.assertEqual(self.sample("callhome_api_request_count_total", "get_all"), 2)
        self.assertEqual(self.sample("callhome_api_request_latency_seconds_count", "get_all"), 2)

    async def test_failed_calls_are_counted_and_reraised(self):
        self.inner.save.side_effect = StorageError("down")

        with self.assertRaises(StorageError):
            await self.svc.save(TelemetryCreate(ip_address="8.8.8.8"))
        self.assertEqual(self.sample("callhome_api_request_count_total", "save"), 1)

class TestLoggingMiddleware(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.logger = MagicMock()
        self.inner = inner_service()
        self.svc = LoggingMiddleware(self.inner, self.logger)

    async def test_logs_success(self):
        await self.svc.save(TelemetryCreate(ip_address="8.8.8.8"))

        self.inner.save.assert_awaited_once()
        self.logger.info.assert_called_once()
        self.assertEqual(self.logger.info.call_args.kwargs["ip_address"], "8.8.8.8")
        self.logger.warning.assert_not_called()

    async def test_logs_failure_without_token(self):
        self.inner.get_all.side_effect = UnauthorizedError("invalid bearer token")

        with self.assertRaises(UnauthorizedError):
            await self.svc.get_all("sheets", "super-secret", PageMetadata(offset=0, limit=10))

        self.logger.warning.assert_called_once()
        kwargs = self.logger.warning.call_args.kwargs
        self.assertEqual(kwargs["error"], "invalid bearer token")
        self.assertEqual(kwargs["repo"], "sheets")
        self.assertNotIn("super-secret", repr(self.logger.warning.call_args))

if __name__ == '__main__':
    unittest.main()
