"""
AppFolio Reports API client with rate limiting, retry and pagination.

This module provides:
- Basic-auth access to the v2 reporting endpoints
- Exponential backoff retry for 429, 5xx and connection failures
- Walking of ``next_page_url`` pagination with partial-result recovery
- Cooperative cancellation during backoff and between pages
"""

import asyncio
import httpx
from dataclasses import dataclass
from typing import List, Dict, Any, Optional, Callable, Awaitable
import logging

from core.config import Settings
from core.exceptions import (
    APIClientError,
    AuthenticationError,
    ClientRequestError,
    ConfigurationError,
    NetworkError,
    RateLimitError,
    RetryableError,
    ServerError,
)
from ingestion.cancellation import CancellationToken
from models.connection import AppfolioConnection

logger = logging.getLogger(__name__)

ReportFn = Callable[[Optional[Dict[str, Any]]], Awaitable[Dict[str, Any]]]
ProgressFn = Callable[[int, int, bool], None]


@dataclass(frozen=True)
class ClientConfig:
    """
    Connection and rate-limit settings for one client instance.

    Resolved once, at the edge, from the persisted connection and the
    application settings; the client never looks configuration up itself.
    """

    client_id: Optional[str]
    client_secret: Optional[str]
    database: Optional[str]
    api_base_url: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 5
    initial_backoff: float = 1.0
    backoff_multiplier: float = 2.0
    max_backoff: float = 60.0
    per_page: int = 100

    @property
    def base_url(self) -> str:
        if self.api_base_url:
            return self.api_base_url.rstrip("/")
        return f"https://{self.database}.appfolio.com"

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.database)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClientConfig":
        return cls(
            client_id=settings.APPFOLIO_CLIENT_ID,
            client_secret=settings.APPFOLIO_CLIENT_SECRET,
            database=settings.APPFOLIO_DATABASE,
            api_base_url=settings.APPFOLIO_API_BASE_URL,
            timeout=settings.APPFOLIO_REQUEST_TIMEOUT,
            max_retries=settings.APPFOLIO_MAX_RETRIES,
            initial_backoff=settings.APPFOLIO_INITIAL_BACKOFF_SECONDS,
            backoff_multiplier=settings.APPFOLIO_BACKOFF_MULTIPLIER,
            max_backoff=settings.APPFOLIO_MAX_BACKOFF_SECONDS,
            per_page=settings.SYNC_BATCH_SIZE,
        )

    @classmethod
    def from_connection(cls, connection: AppfolioConnection, settings: Settings) -> "ClientConfig":
        """Connection row values win; settings fill the gaps and supply rate limits."""
        defaults = cls.from_settings(settings)
        return cls(
            client_id=connection.client_id or defaults.client_id,
            client_secret=connection.client_secret or defaults.client_secret,
            database=connection.database or defaults.database,
            api_base_url=connection.api_base_url or defaults.api_base_url,
            timeout=defaults.timeout,
            max_retries=defaults.max_retries,
            initial_backoff=defaults.initial_backoff,
            backoff_multiplier=defaults.backoff_multiplier,
            max_backoff=defaults.max_backoff,
            per_page=defaults.per_page,
        )


class AppfolioClient:
    """
    Async client for the AppFolio v2 Reports API.

    Every report is a POST with a JSON body and answers
    ``{"results": [...], "next_page_url": "..."}``.

    Attributes:
        config: Immutable connection and backoff settings
        cancel_token: Optional token checked before each attempt and page
    """

    USER_AGENT = "PropSync/1.0"

    REPORT_ENDPOINTS = {
        "property_directory": "/api/v2/reports/property_directory.json",
        "unit_directory": "/api/v2/reports/unit_directory.json",
        "vendor_directory": "/api/v2/reports/vendor_directory.json",
        "work_order": "/api/v2/reports/work_order.json",
        "bill_detail": "/api/v2/reports/bill_detail.json",
        "rent_roll": "/api/v2/reports/rent_roll.json",
    }

    def __init__(
        self,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cancel_token: Optional[CancellationToken] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ):
        if not config.is_configured():
            raise ConfigurationError(
                "AppFolio connection is not configured",
                context={"database": config.database}
            )

        self.config = config
        self.cancel_token = cancel_token
        self._sleep_fn = sleep
        self._http = httpx.AsyncClient(
            base_url=config.base_url,
            auth=(config.client_id, config.client_secret),
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.USER_AGENT,
            },
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "AppfolioClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Backoff
    # ------------------------------------------------------------------

    def compute_backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Sleep duration before retry number ``attempt`` (1-based).

        A Retry-After value wins when present; otherwise the delay grows
        geometrically. Both are capped at ``max_backoff``.
        """
        if retry_after is not None:
            return min(retry_after, self.config.max_backoff)
        delay = self.config.initial_backoff * (self.config.backoff_multiplier ** (attempt - 1))
        return min(delay, self.config.max_backoff)

    async def _sleep(self, seconds: float) -> None:
        if self._sleep_fn is not None:
            await self._sleep_fn(seconds)
        elif self.cancel_token is not None:
            await self.cancel_token.sleep(seconds)
        else:
            await asyncio.sleep(seconds)

    def _raise_if_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> Optional[float]:
        value = response.headers.get("Retry-After")
        if not value:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    async def _retry_or_raise(
        self,
        error: RetryableError,
        attempt: int,
        retry_after: Optional[float] = None
    ) -> None:
        """Sleep before the next attempt, or propagate once the retry budget is spent."""
        error.context["attempt"] = attempt
        if attempt > self.config.max_retries:
            error.context["retries_exhausted"] = True
            logger.error(
                f"AppFolio request failed after {self.config.max_retries} retries: {error.message}"
            )
            raise error

        delay = self.compute_backoff(attempt, retry_after)
        logger.warning(
            f"{error.message}. Retrying in {delay} seconds "
            f"(retry {attempt}/{self.config.max_retries})"
        )
        await self._sleep(delay)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Execute one logical API call with retry semantics.

        Args:
            method: HTTP method
            endpoint: Path relative to the base URL, or an absolute page URL
            params: JSON body for POST, query string otherwise

        Returns:
            Decoded JSON body

        Raises:
            RateLimitError / ServerError / NetworkError: Retries exhausted
            ClientRequestError: Any other 4xx, never retried
            SyncCancelledError: Cancellation observed before an attempt
        """
        attempt = 0

        while True:
            self._raise_if_cancelled()

            try:
                response = await self._send(method, endpoint, params)
            except httpx.TransportError as e:
                attempt += 1
                error = NetworkError(
                    f"Connection error calling {endpoint}",
                    context={"endpoint": endpoint},
                    original_exception=e
                )
                await self._retry_or_raise(error, attempt)
                continue

            if response.is_success:
                return self._decode(response, endpoint)

            if response.status_code == 429:
                attempt += 1
                retry_after = self._parse_retry_after(response)
                error = RateLimitError(
                    f"AppFolio API rate limited on {endpoint}",
                    context={"endpoint": endpoint, "status_code": 429},
                    retry_after=retry_after
                )
                await self._retry_or_raise(error, attempt, retry_after)
                continue

            if response.status_code >= 500:
                attempt += 1
                error = ServerError(
                    f"AppFolio API server error {response.status_code} on {endpoint}",
                    context={
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                        "response_body": response.text[:500],
                    }
                )
                await self._retry_or_raise(error, attempt)
                continue

            raise self._client_error(response, endpoint)

    async def _send(self, method: str, endpoint: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        method = method.upper()
        if method in ("GET", "DELETE"):
            return await self._http.request(method, endpoint, params=params or None)
        return await self._http.request(method, endpoint, json=params if params is not None else {})

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Dict[str, Any]:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise APIClientError(
                "Failed to parse JSON response",
                context={"endpoint": endpoint, "response_body": response.text[:500]},
                original_exception=e
            )

    @staticmethod
    def _client_error(response: httpx.Response, endpoint: str) -> ClientRequestError:
        body = response.text[:1000]
        logger.error(f"AppFolio API client error {response.status_code} on {endpoint}: {body}")

        error_cls = AuthenticationError if response.status_code in (401, 403) else ClientRequestError
        return error_cls(
            f"AppFolio API error: {response.status_code} - {body}",
            status_code=response.status_code,
            response_body=body,
            context={"endpoint": endpoint}
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    async def _report(self, report: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        body = {"paginate_results": True, "per_page": self.config.per_page}
        body.update(params or {})
        return await self.request("POST", self.REPORT_ENDPOINTS[report], body)

    async def get_property_directory(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Properties with address, square footage, unit counts and portfolio."""
        return await self._report("property_directory", params)

    async def get_unit_directory(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._report("unit_directory", params)

    async def get_vendor_directory(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._report("vendor_directory", params)

    async def get_work_order_report(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Work orders; accepts ``from_date`` / ``to_date``."""
        return await self._report("work_order", params)

    async def get_bill_detail(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Bill lines with GL accounts; accepts ``from_date`` / ``to_date``."""
        return await self._report("bill_detail", params)

    async def get_rent_roll(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._report("rent_roll", params)

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    async def fetch_all_pages(
        self,
        report_fn: ReportFn,
        params: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressFn] = None,
        max_pages: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Walk a paginated report to exhaustion.

        Page 1 goes through ``report_fn``; later pages are POSTed directly to
        the opaque ``next_page_url`` the API returned.

        Args:
            report_fn: One of the ``get_*`` report methods
            params: Filters for the first page
            on_progress: Called with (page, cumulative records, has_more)
            max_pages: Stop after this many pages

        Returns:
            Concatenated records. If a later page fails after at least one
            page was collected, the partial result is returned.
        """
        all_results: List[Dict[str, Any]] = []
        page = 1

        try:
            response = await report_fn(params or {})
            all_results.extend(response.get("results") or [])
            next_page_url = response.get("next_page_url")
            has_more = bool(next_page_url)

            if on_progress:
                on_progress(page, len(all_results), has_more)

            while has_more:
                page += 1

                if max_pages is not None and page > max_pages:
                    logger.info(
                        f"Pagination stopped at max pages limit ({max_pages}); "
                        f"{len(all_results)} records fetched"
                    )
                    break

                self._raise_if_cancelled()
                logger.debug(f"Following pagination to page {page}: {next_page_url}")

                response = await self.request("POST", next_page_url, {}) or {}
                all_results.extend(response.get("results") or [])
                next_page_url = response.get("next_page_url")
                has_more = bool(next_page_url)

                if on_progress:
                    on_progress(page, len(all_results), has_more)

            logger.info(f"Pagination complete: {page} pages, {len(all_results)} records")

        except APIClientError as e:
            if all_results:
                logger.warning(
                    f"Pagination failed on page {page}; returning {len(all_results)} "
                    f"records already fetched: {e.message}"
                )
                return all_results
            raise

        return all_results

    async def get_pagination_info(
        self,
        report_fn: ReportFn,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Probe a report with a single-row page. The API exposes no total count."""
        probe = dict(params or {})
        probe["per_page"] = 1
        response = await report_fn(probe)
        return {
            "has_results": bool(response.get("results")),
            "has_more_pages": bool(response.get("next_page_url")),
            "per_page": self.config.per_page,
        }

    async def test_connection(self) -> bool:
        try:
            await self.get_property_directory({"per_page": 1})
            return True
        except APIClientError as e:
            logger.error(f"AppFolio connection test failed: {e.message}")
            return False

    # ------------------------------------------------------------------
    # Connection status
    # ------------------------------------------------------------------

    @staticmethod
    def mark_success(connection: AppfolioConnection) -> None:
        connection.mark_as_success()

    @staticmethod
    def mark_error(connection: AppfolioConnection, error: str) -> None:
        connection.mark_as_error(error)
