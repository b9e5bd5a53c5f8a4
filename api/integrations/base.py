"""Shared HTTP plumbing for collaborator lookups."""

from typing import Any, Dict, Optional

import httpx
import structlog

from api.config.settings import settings
from api.middleware.error_handler import DownstreamUnavailableError, NotFoundError

logger = structlog.get_logger()


class LookupClient:
    """Base class for read-only JSON lookups against a collaborator service.

    404 becomes NotFoundError. Transport errors, timeouts and 5xx become
    DownstreamUnavailableError. Responses wrapped as ``{"data": {...}}`` are
    unwrapped.
    """

    service_name: str = "collaborator"

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.INTEGRATION_TIMEOUT_SECONDS
        self._transport = transport

    async def _get_json(self, path: str, resource: str, identifier: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.get(url, headers={"Accept": "application/json"})
            except httpx.TimeoutException as e:
                logger.error("Lookup timed out", service=self.service_name, url=url)
                raise DownstreamUnavailableError(self.service_name, f"{self.service_name} timed out") from e
            except httpx.RequestError as e:
                logger.error("Lookup request failed", service=self.service_name, url=url, error=str(e))
                raise DownstreamUnavailableError(self.service_name, f"{self.service_name} unreachable") from e

        if response.status_code == 404:
            raise NotFoundError(resource, identifier)
        if response.status_code >= 400:
            logger.error(
                "Lookup returned error status",
                service=self.service_name,
                url=url,
                status_code=response.status_code,
                response=response.text[:500],
            )
            raise DownstreamUnavailableError(
                self.service_name,
                f"{self.service_name} returned {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise DownstreamUnavailableError(self.service_name, f"{self.service_name} returned invalid JSON") from e

        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            raise DownstreamUnavailableError(self.service_name, f"{self.service_name} returned unexpected payload")
        return data
