"""Bearer token authorization for telemetry reads.

The telemetry core treats tokens as opaque and hands them to an Authorizer.
"""

from abc import ABC, abstractmethod
from typing import Optional
import secrets

import requests
import structlog

from callhome.core.config import Settings
from callhome.core.errors import StartupError, UnauthorizedError

logger = structlog.get_logger(__name__)


class Authorizer(ABC):
    """Validates bearer tokens"""

    @abstractmethod
    def authorize(self, token: Optional[str]) -> None:
        """Raise UnauthorizedError unless the token is accepted."""


class StaticTokenAuthorizer(Authorizer):
    """Accepts exactly one configured token."""

    def __init__(self, token: str):
        self._token = token

    def authorize(self, token: Optional[str]) -> None:
        if not token:
            raise UnauthorizedError("missing bearer token")
        if not secrets.compare_digest(token.encode(), self._token.encode()):
            logger.warning("Invalid bearer token")
            raise UnauthorizedError("invalid bearer token")


class RemoteTokenAuthorizer(Authorizer):
    """Delegates validation to an HTTP endpoint.

    The endpoint receives ``Authorization: Bearer <token>``. A 2xx response
    accepts the token; anything else, including connection failures, rejects
    it.
    """

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()

    def authorize(self, token: Optional[str]) -> None:
        if not token:
            raise UnauthorizedError("missing bearer token")

        try:
            response = self._session.get(
                self._url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Authorization service unreachable", url=self._url, error=str(e))
            raise UnauthorizedError("authorization service unavailable") from e

        if response.status_code in (401, 403):
            logger.warning("Bearer token rejected", status_code=response.status_code)
            raise UnauthorizedError("invalid bearer token")
        if not response.ok:
            logger.error("Authorization service error", url=self._url, status_code=response.status_code)
            raise UnauthorizedError(f"authorization service returned {response.status_code}")


class AllowAllAuthorizer(Authorizer):
    """Accepts every request. Only built outside production."""

    def authorize(self, token: Optional[str]) -> None:
        return None


def build_authorizer(settings: Settings) -> Authorizer:
    """Pick the authorizer matching the configuration."""
    if settings.auth_token:
        return StaticTokenAuthorizer(settings.auth_token)
    if settings.auth_url:
        return RemoteTokenAuthorizer(settings.auth_url, timeout=settings.auth_timeout)

    if settings.is_production:
        logger.error("No authorization configured in production")
        raise StartupError("AUTH_TOKEN or AUTH_URL must be set in production")

    logger.warning("AUTH_TOKEN and AUTH_URL not set - telemetry reads are unauthenticated (DEV ONLY)")
    return AllowAllAuthorizer()
