"""
Unit tests for the AppFolio reports client
"""

import json
import pytest
import httpx
from core.config import Settings
from core.exceptions import (
    AuthenticationError,
    ClientRequestError,
    ConfigurationError,
    NetworkError,
    RateLimitError,
    ServerError,
    SyncCancelledError,
)
from ingestion.cancellation import CancellationToken
from ingestion.extractors.appfolio_client import AppfolioClient, ClientConfig
from models.connection import AppfolioConnection


def _rows(start: int, count: int):
    return [{"property_id": i} for i in range(start, start + count)]


class TestClientConfig:

    def test_base_url_from_database(self):
        config = ClientConfig(client_id="id", client_secret="secret", database="acme")
        assert config.base_url == "https://acme.appfolio.com"

    def test_base_url_override(self):
        config = ClientConfig(
            client_id="id", client_secret="secret", database="acme",
            api_base_url="http://localhost:9000/"
        )
        assert config.base_url == "http://localhost:9000"

    def test_unconfigured_client_is_rejected(self):
        config = ClientConfig(client_id="id", client_secret=None, database="acme")
        assert config.is_configured() is False
        with pytest.raises(ConfigurationError):
            AppfolioClient(config)

    def test_connection_values_win_over_settings(self):
        settings = Settings(
            APPFOLIO_CLIENT_ID="settings-id",
            APPFOLIO_CLIENT_SECRET="settings-secret",
            APPFOLIO_DATABASE="settings-db",
            APPFOLIO_MAX_RETRIES=7,
            SYNC_BATCH_SIZE=250,
        )
        connection = AppfolioConnection(client_id="row-id", client_secret=None, database="row-db")

        config = ClientConfig.from_connection(connection, settings)

        assert config.client_id == "row-id"
        assert config.client_secret == "settings-secret"
        assert config.database == "row-db"
        assert config.max_retries == 7
        assert config.per_page == 250


class TestBackoff:

    def test_geometric_backoff_is_capped(self, make_client):
        config = ClientConfig(
            client_id="id", client_secret="secret", database="acme",
            initial_backoff=2, backoff_multiplier=2, max_backoff=30
        )
        client = make_client(lambda request: httpx.Response(200, json={}), config=config)

        assert [client.compute_backoff(n) for n in range(1, 8)] == [2, 4, 8, 16, 30, 30, 30]

    def test_retry_after_is_capped(self, make_client):
        client = make_client(lambda request: httpx.Response(200, json={}))
        assert client.compute_backoff(1, retry_after=5) == 5
        assert client.compute_backoff(1, retry_after=500) == 30

    @pytest.mark.asyncio
    async def test_rate_limit_sleeps_follow_schedule_until_exhausted(self, make_client, sleeps):
        config = ClientConfig(
            client_id="id", client_secret="secret", database="acme",
            initial_backoff=2, backoff_multiplier=2, max_backoff=30, max_retries=6
        )
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, text="slow down")

        client = make_client(handler, config=config)

        with pytest.raises(RateLimitError) as exc_info:
            await client.request("POST", "/api/v2/reports/property_directory.json", {})

        assert sleeps.calls == [2, 4, 8, 16, 30, 30]
        assert len(calls) == 7
        assert exc_info.value.context["retries_exhausted"] is True

    @pytest.mark.asyncio
    async def test_retry_after_header_is_honoured(self, make_client, sleeps):
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "120"}),
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"results": []}),
        ])
        client = make_client(lambda request: next(responses))

        body = await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert body == {"results": []}
        assert sleeps.calls == [30, 3]


class TestRequest:

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, make_client, sleeps):
        responses = iter([
            httpx.Response(503, text="unavailable"),
            httpx.Response(502, text="bad gateway"),
            httpx.Response(200, json={"results": [{"unit_id": 1}]}),
        ])
        client = make_client(lambda request: next(responses))

        body = await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert body["results"] == [{"unit_id": 1}]
        assert sleeps.calls == [1, 2]

    @pytest.mark.asyncio
    async def test_server_error_ignores_retry_after(self, make_client, sleeps):
        responses = iter([
            httpx.Response(500, headers={"Retry-After": "25"}),
            httpx.Response(200, json={}),
        ])
        client = make_client(lambda request: next(responses))

        await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert sleeps.calls == [1]

    @pytest.mark.asyncio
    async def test_server_error_exhaustion_propagates(self, make_client, sleeps):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(ServerError):
            await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert sleeps.calls == [1, 2, 4]

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, make_client, sleeps):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422, text="from_date is required")

        client = make_client(handler)

        with pytest.raises(ClientRequestError) as exc_info:
            await client.request("POST", "/api/v2/reports/bill_detail.json", {})

        assert len(calls) == 1
        assert sleeps.calls == []
        assert exc_info.value.status_code == 422
        assert exc_info.value.message == "AppFolio API error: 422 - from_date is required"

    @pytest.mark.asyncio
    async def test_unauthorized_raises_authentication_error(self, make_client):
        client = make_client(lambda request: httpx.Response(401, text="bad credentials"))

        with pytest.raises(AuthenticationError):
            await client.request("POST", "/api/v2/reports/property_directory.json", {})

    @pytest.mark.asyncio
    async def test_connection_failures_are_retried_then_raised(self, make_client, sleeps):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(NetworkError) as exc_info:
            await client.request("POST", "/api/v2/reports/property_directory.json", {})

        assert sleeps.calls == [1, 2, 4]
        assert exc_info.value.context["retries_exhausted"] is True
        assert isinstance(exc_info.value.original_exception, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_report_posts_pagination_body_with_basic_auth(self, make_client):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"results": []})

        client = make_client(handler)
        await client.get_bill_detail({"from_date": "2024-01-01", "to_date": "2024-01-31"})

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v2/reports/bill_detail.json"
        assert request.url.host == "acme.appfolio.com"
        assert request.headers["Authorization"].startswith("Basic ")
        assert json.loads(request.content) == {
            "paginate_results": True,
            "per_page": 100,
            "from_date": "2024-01-01",
            "to_date": "2024-01-31",
        }


class TestPagination:

    @staticmethod
    def three_page_handler(fail_on_page=None):
        pages = {
            "1": (_rows(0, 100), "https://acme.appfolio.com/api/v2/reports/next.json?page=2"),
            "2": (_rows(100, 100), "https://acme.appfolio.com/api/v2/reports/next.json?page=3"),
            "3": (_rows(200, 37), None),
        }

        def handler(request):
            page = request.url.params.get("page", "1")
            if page == fail_on_page:
                return httpx.Response(400, text="bad page")
            results, next_url = pages[page]
            return httpx.Response(200, json={"results": results, "next_page_url": next_url})

        return handler

    @pytest.mark.asyncio
    async def test_fetch_all_pages_walks_next_page_urls(self, make_client):
        client = make_client(self.three_page_handler())
        progress = []

        records = await client.fetch_all_pages(
            client.get_property_directory,
            on_progress=lambda page, total, has_more: progress.append((page, total, has_more))
        )

        assert len(records) == 237
        assert records[-1] == {"property_id": 236}
        assert progress == [(1, 100, True), (2, 200, True), (3, 237, False)]

    @pytest.mark.asyncio
    async def test_max_pages_stops_early(self, make_client):
        client = make_client(self.three_page_handler())

        records = await client.fetch_all_pages(client.get_property_directory, max_pages=2)

        assert len(records) == 200

    @pytest.mark.asyncio
    async def test_mid_pagination_failure_returns_partial_results(self, make_client):
        client = make_client(self.three_page_handler(fail_on_page="2"))

        records = await client.fetch_all_pages(client.get_property_directory)

        assert len(records) == 100

    @pytest.mark.asyncio
    async def test_first_page_failure_propagates(self, make_client):
        client = make_client(self.three_page_handler(fail_on_page="1"))

        with pytest.raises(ClientRequestError):
            await client.fetch_all_pages(client.get_property_directory)

    @pytest.mark.asyncio
    async def test_pagination_info_probes_single_row(self, make_client):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"results": [{"unit_id": 1}], "next_page_url": "/more"})

        client = make_client(handler)
        info = await client.get_pagination_info(client.get_unit_directory)

        assert bodies[0]["per_page"] == 1
        assert info == {"has_results": True, "has_more_pages": True, "per_page": 100}


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancelled_before_request(self, make_client):
        token = CancellationToken()
        token.cancel()
        calls = []
        client = make_client(lambda request: calls.append(request), cancel_token=token)

        with pytest.raises(SyncCancelledError):
            await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert calls == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_backoff(self, make_client):
        token = CancellationToken()

        def handler(request):
            token.cancel("operator stop")
            return httpx.Response(503)

        client = make_client(handler, cancel_token=token, sleep=None)

        with pytest.raises(SyncCancelledError) as exc_info:
            await client.request("POST", "/api/v2/reports/unit_directory.json", {})

        assert exc_info.value.message == "operator stop"


@pytest.mark.asyncio
async def test_test_connection_reports_failure(make_client):
    client = make_client(lambda request: httpx.Response(403, text="forbidden"))
    assert await client.test_connection() is False


def test_mark_success_and_error_update_connection():
    connection = AppfolioConnection(client_id="id", client_secret="secret", database="acme")

    AppfolioClient.mark_error(connection, "boom")
    assert connection.last_error == "boom"

    AppfolioClient.mark_success(connection)
    assert connection.last_error is None
    assert connection.last_success_at is not None
