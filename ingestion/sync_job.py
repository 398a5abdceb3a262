"""
One complete sync for one connection: the entry point used by the
scheduler and the command line.
"""

from datetime import date
from typing import Awaitable, Callable, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import httpx
import logging

from core.config import Settings, settings as default_settings
from core.exceptions import SyncException
from ingestion.alerts import AlertPolicy, Notifier, SyncFailureAlertService
from ingestion.cancellation import CancellationToken
from ingestion.extractors.appfolio_client import AppfolioClient, ClientConfig
from ingestion.notifications import EmailNotifier, SmtpConfig
from ingestion.runner import IngestionEngine, SyncOptions
from models.base import ConnectionStatus, SyncMode, SyncStatus
from models.connection import AppfolioConnection
from models.sync_run import SyncRun

logger = logging.getLogger(__name__)


async def get_or_create_default_connection(
    session: AsyncSession,
    settings: Settings = default_settings
) -> AppfolioConnection:
    """First persisted connection, or one seeded from settings."""
    result = await session.execute(
        select(AppfolioConnection).order_by(AppfolioConnection.id).limit(1)
    )
    connection = result.scalar_one_or_none()
    if connection is not None:
        return connection

    connection = AppfolioConnection(
        name="default",
        client_id=settings.APPFOLIO_CLIENT_ID,
        client_secret=settings.APPFOLIO_CLIENT_SECRET,
        database=settings.APPFOLIO_DATABASE,
        api_base_url=settings.APPFOLIO_API_BASE_URL,
        status=ConnectionStatus.NOT_CONFIGURED,
    )
    session.add(connection)
    await session.commit()
    logger.info(f"Created default AppFolio connection {connection.id}")
    return connection


async def run_sync(
    session: AsyncSession,
    connection: AppfolioConnection,
    mode: SyncMode = SyncMode.INCREMENTAL,
    *,
    settings: Settings = default_settings,
    options: Optional[SyncOptions] = None,
    policy: Optional[AlertPolicy] = None,
    notifier: Optional[Notifier] = None,
    date_range: Optional[Tuple[date, date]] = None,
    cancel_token: Optional[CancellationToken] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None
) -> SyncRun:
    """
    Create a sync run, drive it to a terminal state and evaluate alerts.

    Settings are resolved here, once, into the value objects the client,
    engine and alert service are built from.

    Args:
        session: Database session owned by the caller
        connection: AppFolio connection to sync
        mode: Full or incremental
        date_range: Overrides the lookback window for date-range reports
        cancel_token: Lets the caller stop the run between records
        transport / sleep: Injected HTTP transport and backoff sleep

    Returns:
        The finished SyncRun (completed or failed)
    """
    options = options or SyncOptions.from_settings(settings)
    policy = policy or AlertPolicy.from_settings(settings)
    if notifier is None and policy.enabled:
        notifier = EmailNotifier(SmtpConfig.from_settings(settings))

    run = SyncRun(connection_id=connection.id, mode=mode, status=SyncStatus.PENDING)
    if date_range is not None:
        run.set_custom_date_range(*date_range)
    session.add(run)
    await session.commit()

    config = ClientConfig.from_connection(connection, settings)

    if not config.is_configured():
        message = "AppFolio connection is not configured"
        logger.error(f"Sync run {run.id} failed: {message}")
        run.mark_as_failed(message)
        connection.status = ConnectionStatus.NOT_CONFIGURED
        connection.last_error = message
        await session.commit()
    else:
        async with AppfolioClient(config, transport=transport, cancel_token=cancel_token, sleep=sleep) as client:
            engine = IngestionEngine(session, client, options)
            await engine.start_sync(run)

            try:
                await engine.process_all()
                await engine.complete_sync()
            except SyncException as e:
                await engine.fail_sync(e)
            except Exception as e:
                logger.exception(f"Unexpected error in sync run {run.id}")
                await engine.fail_sync(e)

    await SyncFailureAlertService(session, policy, notifier).handle_sync_completed(run)
    return run
