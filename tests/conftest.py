"""
Pytest configuration and fixtures
"""

import json
import pytest
import pytest_asyncio
import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator, Callable, Dict, List, Any

from core.database import build_engine, build_session_maker
from ingestion.extractors.appfolio_client import AppfolioClient, ClientConfig
import models  # noqa: F401  registers every table on Base.metadata
from models.base import Base, SyncMode, SyncStatus
from models.connection import AppfolioConnection
from models.sync_run import SyncRun

# In-memory SQLite shared across the fixture's sessions
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = build_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with build_session_maker(test_engine)() as session:
        yield session


@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(
        client_id="client",
        client_secret="secret",
        database="acme",
        max_retries=3,
        initial_backoff=1.0,
        backoff_multiplier=2.0,
        max_backoff=30.0,
        per_page=100,
    )


class SleepRecorder:
    """Stands in for asyncio.sleep and records every requested delay."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(client_config, sleeps) -> Callable[..., AppfolioClient]:
    """Build a client whose HTTP traffic is answered by ``handler``."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], config: ClientConfig = None, **kwargs):
        return AppfolioClient(
            config or client_config,
            transport=httpx.MockTransport(handler),
            sleep=kwargs.pop("sleep", sleeps),
            **kwargs
        )

    return _make


class ReportServer:
    """
    Fake AppFolio reports API: one canned result list per report path.

    Requests are recorded so tests can inspect bodies and paths.
    """

    def __init__(self, reports: Dict[str, List[Dict[str, Any]]] = None, errors: Dict[str, int] = None):
        self.reports = reports or {}
        self.errors = errors or {}
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        name = request.url.path.rsplit("/", 1)[-1].replace(".json", "")
        if name in self.errors:
            return httpx.Response(self.errors[name], text=f"{name} unavailable")
        return httpx.Response(200, json={"results": self.reports.get(name, []), "next_page_url": None})

    def bodies_for(self, name: str) -> List[Dict[str, Any]]:
        return [
            json.loads(r.content or b"{}")
            for r in self.requests
            if r.url.path.endswith(f"/{name}.json")
        ]


@pytest.fixture
def report_server() -> ReportServer:
    return ReportServer()


@pytest_asyncio.fixture
async def connection(db_session) -> AppfolioConnection:
    connection = AppfolioConnection(
        name="acme",
        client_id="client",
        client_secret="secret",
        database="acme",
    )
    db_session.add(connection)
    await db_session.commit()
    return connection


@pytest_asyncio.fixture
async def sync_run(db_session, connection) -> SyncRun:
    run = SyncRun(connection_id=connection.id, mode=SyncMode.FULL, status=SyncStatus.PENDING)
    db_session.add(run)
    await db_session.commit()
    return run


@pytest.fixture
def property_records() -> List[Dict[str, Any]]:
    return [
        {
            "property_id": 101,
            "property_name": "Maple Court",
            "property_street": "1 Maple Ct",
            "property_city": "Austin",
            "property_state": "TX",
            "property_zip": "78701",
            "units": "12",
        },
        {
            "property_id": 102,
            "property_name": "Oak Terrace",
            "property_street": "9 Oak Ter",
            "property_city": "Austin",
            "property_state": "TX",
            "property_zip": "78702",
            "units": "4",
        },
    ]


@pytest.fixture
def unit_records() -> List[Dict[str, Any]]:
    return [
        {"unit_id": 201, "property_id": 101, "unit_name": "1A", "sqft": "750", "bedrooms": "1"},
        {"unit_id": 202, "property_id": 101, "unit_name": "1B", "sqft": "900", "bedrooms": "2"},
        {"unit_id": 203, "property_id": 102, "unit_name": "2A", "sqft": "650", "bedrooms": "1"},
    ]
