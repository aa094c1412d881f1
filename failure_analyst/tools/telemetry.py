"""Telemetry backends queried by the tool executors."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable, TYPE_CHECKING

import httpx

from ..settings import (
    MAX_RETRIES,
    RETRY_BACKOFF_FACTOR,
    TELEMETRY_API_TOKEN,
    TELEMETRY_BASE_URL,
)

if TYPE_CHECKING:
    from ..orchestration.models import TimeWindow

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class TelemetryError(Exception):
    """A telemetry query failed."""


@runtime_checkable
class TelemetryBackend(Protocol):
    """
    Protocol for telemetry sources.

    Sources are plain names: ``metrics``, ``logs``, ``audit``, ``traces`` and
    ``kb``. Implementations raise ``TelemetryError`` on failure.
    """

    async def query(
        self,
        source: str,
        params: dict[str, Any],
        window: TimeWindow | None = None,
    ) -> list[dict]:
        """
        Query one telemetry source.

        Args:
            source: Source name
            params: Source-specific filters
            window: Time range, if the source is time based

        Returns:
            Matching records (possibly empty)
        """
        ...


class HttpTelemetryBackend:
    """
    Telemetry gateway client over HTTP.

    Issues ``GET {base_url}/{source}`` with the filters and the window bounds
    as query parameters and expects ``{"records": [...]}`` back.

    Usage:
        async with HttpTelemetryBackend() as backend:
            records = await backend.query("metrics", {"namespace": "checkout"}, window)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_token: str | None = None,
        timeout: float = 30.0,
        max_retries: int = MAX_RETRIES,
        backoff_factor: float = RETRY_BACKOFF_FACTOR,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or TELEMETRY_BASE_URL).rstrip("/")
        self.api_token = api_token or TELEMETRY_API_TOKEN
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self._transport = transport

        self.headers: dict[str, str] = {"Accept": "application/json"}
        if self.api_token:
            self.headers["Authorization"] = f"Bearer {self.api_token}"

        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HttpTelemetryBackend":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "Client not initialized. Use 'async with' context manager."
            )
        return self._client

    async def query(
        self,
        source: str,
        params: dict[str, Any],
        window: TimeWindow | None = None,
    ) -> list[dict]:
        """Query one source through the gateway."""
        query_params = {k: v for k, v in params.items() if v is not None}
        if window is not None:
            query_params["start"] = window.start.isoformat()
            query_params["end"] = window.end.isoformat()

        response = await self._request_with_retry("GET", f"/{source}", params=query_params)

        try:
            payload = response.json()
        except ValueError as e:
            raise TelemetryError(f"Invalid JSON from {source}: {e}") from e

        records = payload.get("records", []) if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise TelemetryError(f"Unexpected payload from {source}")
        return records

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Make a request with exponential backoff retry on 429 and 5xx."""
        last_error = "no attempt made"

        for attempt in range(self.max_retries):
            logger.debug(f"Request attempt {attempt + 1}/{self.max_retries}: {method} {url}")
            backoff = self.backoff_factor * (2 ** attempt)

            try:
                response = await self.client.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.ReadTimeout) as e:
                last_error = f"connection error: {e}"
                logger.warning(f"Connection error: {e}, backoff {backoff}s")
                await asyncio.sleep(backoff)
                continue

            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error = f"status {response.status_code}"
                if response.status_code == 429:
                    retry_after = response.headers.get("Retry-After", "0")
                    backoff = max(backoff, float(retry_after) if retry_after.isdigit() else 0.0)
                logger.warning(
                    f"Telemetry gateway returned {response.status_code}, backoff {backoff}s "
                    f"(attempt {attempt + 1})"
                )
                await asyncio.sleep(backoff)
                continue

            if response.is_error:
                raise TelemetryError(
                    f"{method} {url} failed with status {response.status_code}: {response.text[:200]}"
                )
            return response

        logger.error(f"Request failed after {self.max_retries} retries")
        raise TelemetryError(f"{method} {url} failed after {self.max_retries} attempts ({last_error})")


class InMemoryTelemetryBackend:
    """
    Telemetry backend serving fixed records.

    Records are filtered by exact match on any parameter that appears as a key
    in the record; other parameters are ignored.
    """

    def __init__(
        self,
        records: dict[str, list[dict]] | None = None,
        failures: dict[str, Exception] | None = None,
    ):
        self.records = records or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def query(
        self,
        source: str,
        params: dict[str, Any],
        window: TimeWindow | None = None,
    ) -> list[dict]:
        self.calls.append((source, dict(params)))
        if source in self.failures:
            raise self.failures[source]

        matches = []
        for record in self.records.get(source, []):
            if all(
                record.get(key) == value
                for key, value in params.items()
                if key in record and value is not None
            ):
                matches.append(record)
        return matches

    async def __aenter__(self) -> "InMemoryTelemetryBackend":
        return self

    async def __aexit__(self, *args) -> None:
        pass
