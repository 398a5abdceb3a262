"""
End-to-end sync runs against a fake reports API
"""

import pytest
import pytest_asyncio
import httpx
from datetime import date
from sqlalchemy import select

from core.config import Settings
from ingestion.alerts import AlertPolicy
from ingestion.cancellation import CancellationToken
from ingestion.runner import SyncOptions
from ingestion.sync_job import get_or_create_default_connection, run_sync
from models.alert import SyncFailureAlert
from models.base import ConnectionStatus, SyncMode, SyncStatus, UnitStatus
from models.billing import UtilityAccount, UtilityExpense
from models.connection import AppfolioConnection
from models.property import Property, Unit
from models.vendor import WorkOrder


@pytest.fixture
def settings() -> Settings:
    return Settings(APPFOLIO_CLIENT_SECRET=None, APPFOLIO_MAX_RETRIES=2, SYNC_BATCH_SIZE=100)


@pytest.fixture
def no_alerts() -> AlertPolicy:
    return AlertPolicy(enabled=False)


@pytest.fixture
def populated_server(report_server, property_records, unit_records):
    report_server.reports.update({
        "property_directory": property_records,
        "unit_directory": unit_records,
        "vendor_directory": [{"vendor_id": 501, "company_name": "Ace Plumbing"}],
        "rent_roll": [{"occupancy_id": 1, "unit_id": 201, "lease_from": "2000-01-01", "rent": "950"}],
        "work_order": [{"work_order_id": 900, "property_id": 101, "vendor_id": 501, "created_at": "2024-06-01"}],
        "bill_detail": [
            {"txn_id": 7001, "property_id": 101, "account": "6210 - Water", "paid": "40.00", "unpaid": "10.00"},
            {"txn_id": 7002, "property_id": 102, "account": "6400 - Repairs", "paid": "15.00"},
        ],
    })
    return report_server


async def fetch_all(session, model):
    result = await session.execute(
        select(model).order_by(model.id).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def sync(session, connection, server, settings, policy, mode=SyncMode.FULL, **kwargs):
    return await run_sync(
        session,
        connection,
        mode,
        settings=settings,
        options=SyncOptions(),
        policy=policy,
        transport=httpx.MockTransport(server),
        sleep=kwargs.pop("sleep", None) or _no_sleep,
        **kwargs
    )


async def _no_sleep(seconds: float) -> None:
    return None


class TestRunSync:

    @pytest.mark.asyncio
    async def test_full_sync_completes(self, db_session, connection, populated_server, settings, no_alerts):
        run = await sync(db_session, connection, populated_server, settings, no_alerts)

        assert run.status == SyncStatus.COMPLETED
        assert run.errors_count == 0
        assert connection.status == ConnectionStatus.CONNECTED

        summary = run.get_summary()
        assert summary["total_created"] == 10
        assert set(summary["resource_metrics"]) == {
            "properties", "units", "vendors", "rent_roll", "work_orders", "bill_details"
        }

        units = {u.external_id: u for u in await fetch_all(db_session, Unit)}
        assert units["201"].status == UnitStatus.OCCUPIED
        assert units["202"].status == UnitStatus.VACANT

        work_order = (await fetch_all(db_session, WorkOrder))[0]
        assert work_order.vendor_id is not None

    @pytest.mark.asyncio
    async def test_resources_are_requested_in_dependency_order(self, db_session, connection, populated_server, settings, no_alerts):
        await sync(db_session, connection, populated_server, settings, no_alerts)

        paths = [r.url.path.rsplit("/", 1)[-1] for r in populated_server.requests]
        assert paths == [
            "property_directory.json",
            "unit_directory.json",
            "vendor_directory.json",
            "rent_roll.json",
            "work_order.json",
            "bill_detail.json",
        ]

    @pytest.mark.asyncio
    async def test_second_full_sync_updates(self, db_session, connection, populated_server, settings, no_alerts):
        await sync(db_session, connection, populated_server, settings, no_alerts)
        run = await sync(db_session, connection, populated_server, settings, no_alerts)

        summary = run.get_summary()
        assert summary["total_created"] == 0
        assert summary["total_updated"] == 10
        assert len(await fetch_all(db_session, Property)) == 2

    @pytest.mark.asyncio
    async def test_incremental_sends_modified_since(self, db_session, connection, populated_server, settings, no_alerts):
        await sync(db_session, connection, populated_server, settings, no_alerts, mode=SyncMode.INCREMENTAL)

        body = populated_server.bodies_for("property_directory")[0]
        assert "modified_since" in body
        assert body["paginate_results"] is True

    @pytest.mark.asyncio
    async def test_custom_date_range(self, db_session, connection, populated_server, settings, no_alerts):
        run = await sync(
            db_session, connection, populated_server, settings, no_alerts,
            date_range=(date(2024, 1, 1), date(2024, 3, 31))
        )

        assert run.get_custom_date_range() == ("2024-01-01", "2024-03-31")
        for report in ("bill_detail", "work_order"):
            body = populated_server.bodies_for(report)[0]
            assert body["from_date"] == "2024-01-01"
            assert body["to_date"] == "2024-03-31"

    @pytest.mark.asyncio
    async def test_utility_expenses_follow_bill_details(self, db_session, connection, populated_server, settings, no_alerts):
        db_session.add(UtilityAccount(gl_account_number="6210", gl_account_name="Water", utility_type="water"))
        await db_session.commit()

        run = await sync(db_session, connection, populated_server, settings, no_alerts)

        assert run.status == SyncStatus.COMPLETED
        expenses = await fetch_all(db_session, UtilityExpense)
        assert len(expenses) == 1
        assert expenses[0].external_expense_id == "7001"
        assert expenses[0].utility_type == "water"
        assert expenses[0].amount == 50.0


class TestFailures:

    @pytest.mark.asyncio
    async def test_fetch_failure_fails_run_but_other_resources_sync(self, db_session, connection, populated_server, settings, no_alerts):
        populated_server.errors["unit_directory"] = 403

        run = await sync(db_session, connection, populated_server, settings, no_alerts)

        assert run.status == SyncStatus.FAILED
        assert "units" in run.error_summary
        assert run.get_resource_errors("units")
        assert connection.status == ConnectionStatus.ERROR
        assert connection.last_error == run.error_summary
        # Resources after the failed one were still fetched
        assert populated_server.bodies_for("bill_detail")
        assert len(await fetch_all(db_session, Property)) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, db_session, connection, populated_server, settings, no_alerts, sleeps):
        responses = {"count": 0}

        def flaky(request):
            if request.url.path.endswith("property_directory.json") and responses["count"] == 0:
                responses["count"] += 1
                return httpx.Response(429, headers={"Retry-After": "2"})
            return populated_server(request)

        run = await sync(db_session, connection, flaky, settings, no_alerts, sleep=sleeps)

        assert run.status == SyncStatus.COMPLETED
        assert sleeps.calls == [2]

    @pytest.mark.asyncio
    async def test_unconfigured_connection(self, db_session, report_server, settings, no_alerts):
        connection = AppfolioConnection(name="blank", database="acme")
        db_session.add(connection)
        await db_session.commit()

        run = await sync(db_session, connection, report_server, settings, no_alerts)

        assert run.status == SyncStatus.FAILED
        assert run.error_summary == "AppFolio connection is not configured"
        assert connection.status == ConnectionStatus.NOT_CONFIGURED
        assert report_server.requests == []

    @pytest.mark.asyncio
    async def test_cancelled_run_fails(self, db_session, connection, populated_server, settings, no_alerts):
        token = CancellationToken()
        token.cancel("shutdown requested")

        run = await sync(db_session, connection, populated_server, settings, no_alerts, cancel_token=token)

        assert run.status == SyncStatus.FAILED
        assert run.error_summary == "shutdown requested"
        assert populated_server.requests == []

    @pytest.mark.asyncio
    async def test_failed_runs_feed_alert_counter(self, db_session, connection, report_server, settings):
        report_server.errors["property_directory"] = 401

        await sync(db_session, connection, report_server, settings, AlertPolicy(enabled=False))
        await sync(db_session, connection, report_server, settings, AlertPolicy(enabled=False))

        result = await db_session.execute(
            select(SyncFailureAlert).execution_options(populate_existing=True)
        )
        alert = result.scalar_one()
        assert alert.consecutive_failures == 2
        assert alert.last_alert_sent_at is None


class TestDefaultConnection:

    @pytest.mark.asyncio
    async def test_seeded_from_settings_once(self, db_session):
        settings = Settings(APPFOLIO_CLIENT_ID="cid", APPFOLIO_CLIENT_SECRET="secret", APPFOLIO_DATABASE="acme")

        first = await get_or_create_default_connection(db_session, settings)
        second = await get_or_create_default_connection(db_session, settings)

        assert first.id == second.id
        assert first.database == "acme"
        assert first.status == ConnectionStatus.NOT_CONFIGURED
