"""
Ingestion engine - one sync run across the configured resource types.

This module provides:
- The sync run lifecycle: start, process, complete or fail
- Per-record normalize and upsert with outcome values instead of exceptions
- Bulk reference prefetch through a run-scoped entity cache
- Cooperative cancellation between records with progress kept
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from core.config import Settings
from core.exceptions import (
    APIClientError,
    IngestionError,
    ResourceFetchError,
    SyncCancelledError,
    SyncException,
)
from ingestion.cancellation import CancellationToken
from ingestion.entity_cache import EntityResolutionCache
from ingestion.extractors.appfolio_client import AppfolioClient
from ingestion.loaders.entity_loader import EntityLoader, RawEventStore
from ingestion.resources import (
    HANDLERS,
    ResourceHandler,
    ResourceType,
    get_handler,
    ordered,
)
from ingestion.tracker import ResourceSyncTracker, summarize_errors
from ingestion.unit_status import update_unit_status_from_leases
from ingestion.utility_expenses import UtilityExpenseProcessor
from models.base import SyncMode
from models.billing import BillDetail
from models.connection import AppfolioConnection
from models.sync_run import SyncRun

logger = logging.getLogger(__name__)


class RecordOutcome(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class RecordResult:
    """Outcome of one record. Expected conditions are values, not exceptions."""

    outcome: RecordOutcome
    external_id: Optional[str] = None
    internal_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class SyncOptions:
    resources: Tuple[str, ...] = (
        "properties", "units", "vendors", "rent_roll", "work_orders", "bill_details"
    )
    incremental_days: int = 7
    full_lookback_days: int = 365
    max_pages: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyncOptions":
        return cls(
            resources=tuple(settings.sync_resource_list),
            incremental_days=settings.SYNC_INCREMENTAL_DAYS,
            full_lookback_days=settings.SYNC_FULL_LOOKBACK_DAYS,
            max_pages=settings.SYNC_MAX_PAGES,
        )


@dataclass
class SyncSession:
    """Everything scoped to one run; created by ``start_sync`` and dropped with the engine."""

    run: SyncRun
    cache: EntityResolutionCache
    cancel_token: CancellationToken
    connection: Optional[AppfolioConnection] = None
    trackers: Dict[ResourceType, ResourceSyncTracker] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    processed_count: int = 0
    error_count: int = 0

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.error_count += 1


class IngestionEngine:
    """
    Orchestrates a sync run

    Responsibilities:
    - Move the SyncRun through pending -> running -> completed | failed
    - Fetch each resource type in referential order
    - Store every fetched record as a raw event before normalizing it
    - Keep one bad record from aborting its batch
    - Mark the connection healthy or errored
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: Optional[AppfolioClient] = None,
        options: Optional[SyncOptions] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        self.db = db_session
        self.client = client
        self.options = options or SyncOptions()
        self.clock = clock
        self.loader = EntityLoader(db_session)
        self.raw_events = RawEventStore(db_session)
        self._sync: Optional[SyncSession] = None

    @property
    def sync(self) -> SyncSession:
        if self._sync is None:
            raise IngestionError("Sync has not been started")
        return self._sync

    @property
    def processed_count(self) -> int:
        return self.sync.processed_count

    @property
    def error_count(self) -> int:
        return self.sync.error_count

    @property
    def errors(self) -> List[str]:
        return list(self.sync.errors)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start_sync(self, run: SyncRun) -> "IngestionEngine":
        """Mark ``run`` running and open a fresh run-scoped session."""
        token = CancellationToken()
        if self.client is not None:
            if self.client.cancel_token is None:
                self.client.cancel_token = token
            else:
                token = self.client.cancel_token

        connection = None
        if run.connection_id is not None:
            connection = await self.db.get(AppfolioConnection, run.connection_id)

        run.mark_as_running(now=self.clock())
        self._sync = SyncSession(
            run=run,
            cache=EntityResolutionCache(self.db),
            cancel_token=token,
            connection=connection,
        )
        await self.db.commit()

        logger.info(
            f"Sync run {run.id} started",
            extra={"sync_run_id": run.id, "mode": SyncMode(run.mode).value}
        )
        return self

    def cancel(self, reason: str = "Sync cancelled") -> None:
        """Request a stop; observed between records, between pages and during backoff."""
        self.sync.cancel_token.cancel(reason)

    async def complete_sync(self) -> Dict[str, Any]:
        """
        Finish the run as completed.

        Record-level errors do not fail the run; they are tallied and
        summarized on it. The connection is marked healthy only when the
        run had no errors at all.

        Returns:
            The run summary
        """
        sync = self.sync
        run = sync.run

        await self._process_utility_expenses()

        now = self.clock()
        if sync.error_count > 0:
            run.mark_as_completed_with_errors(
                resources_synced=sync.processed_count,
                errors_count=sync.error_count,
                error_summary=summarize_errors(sync.errors),
                now=now
            )
        else:
            run.mark_as_completed(sync.processed_count, now=now)
            if sync.connection is not None:
                sync.connection.mark_as_success(now=now)

        await self.db.commit()

        logger.info(
            f"Sync run {run.id} completed: {sync.processed_count} synced, "
            f"{sync.error_count} errors"
        )
        return run.get_summary()

    async def fail_sync(self, error: Any) -> None:
        """
        Roll back uncommitted work and mark the run and connection failed.

        Resources committed before the failure stay in place.
        """
        message = error.message if isinstance(error, SyncException) else str(error)
        sync = self.sync
        run = sync.run

        await self.db.rollback()
        await self.db.refresh(run)

        if run.is_terminal:
            logger.warning(f"Sync run {run.id} already finished; not marking it failed")
            return

        run.mark_as_failed(message, errors_count=max(sync.error_count, 1), now=self.clock())
        if sync.connection is not None:
            await self.db.refresh(sync.connection)
            sync.connection.mark_as_error(message)

        await self.db.commit()

        logger.error(
            f"Sync run {run.id} failed: {message}",
            extra={"error_context": error.to_dict() if isinstance(error, SyncException) else {"error": message}}
        )

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def process_all(self) -> Dict[str, Dict[str, int]]:
        """
        Fetch and ingest every configured resource type in processing order.

        A resource whose fetch fails is recorded and the remaining resources
        still run; the failure is then raised so the run ends failed rather
        than silently missing that resource.

        Raises:
            ResourceFetchError: One or more resources could not be fetched
            SyncCancelledError: The run was cancelled
        """
        results: Dict[str, Dict[str, int]] = {}
        fetch_failures: Dict[str, str] = {}

        for resource_type in ordered(list(self.options.resources)):
            self.sync.cancel_token.raise_if_cancelled()

            handler = HANDLERS[resource_type]
            if not handler.fetchable:
                logger.info(f"{resource_type.value} has no report endpoint; skipping fetch")
                continue

            try:
                results[resource_type.value] = await self.process_resource(resource_type)
            except APIClientError as e:
                message = f"Failed to process {resource_type.value}: {e.message}"
                fetch_failures[resource_type.value] = e.message
                self.sync.add_error(message)
                self.sync.run.add_resource_error(resource_type.value, message)
                await self.db.commit()
                logger.error(message, extra={"error_context": e.to_dict()})

        if fetch_failures:
            raise ResourceFetchError(
                f"Failed to fetch {len(fetch_failures)} resource type(s): "
                f"{', '.join(sorted(fetch_failures))}",
                context={"failed_resources": fetch_failures}
            )
        return results

    async def process_resource(self, resource_type: Any) -> Dict[str, int]:
        """Fetch every page of one report and ingest the records."""
        handler = get_handler(resource_type)
        if handler.report is None:
            raise IngestionError(
                f"{handler.resource_type.value} has no report endpoint",
                context={"resource_type": handler.resource_type.value}
            )
        if self.client is None:
            raise IngestionError("No API client configured for this engine")

        rt = handler.resource_type.value
        params = self.build_query_params(handler)
        report_fn = getattr(self.client, handler.report.__name__)

        def on_progress(page: int, records_fetched: int, has_more: bool) -> None:
            logger.info(
                f"Fetched page {page} for {rt}",
                extra={"records_so_far": records_fetched, "has_more": has_more}
            )

        records = await self.client.fetch_all_pages(
            report_fn,
            params,
            on_progress=on_progress,
            max_pages=self.options.max_pages
        )
        metrics = await self.process_records(handler.resource_type, records)

        if handler.resource_type == ResourceType.RENT_ROLL:
            await update_unit_status_from_leases(self.db, self.clock().date())
            await self.db.commit()

        return metrics

    def build_query_params(self, handler: ResourceHandler) -> Dict[str, Any]:
        """
        Report filters for the run's mode.

        Date-range reports always get ``from_date`` / ``to_date``: the run's
        custom range when set, else the incremental or full lookback ending
        today. Other reports get ``modified_since`` in incremental mode only.
        """
        run = self.sync.run
        now = self.clock()
        incremental = SyncMode(run.mode) == SyncMode.INCREMENTAL

        if handler.uses_date_range:
            custom = run.get_custom_date_range()
            if custom:
                from_date, to_date = custom
            else:
                days = self.options.incremental_days if incremental else self.options.full_lookback_days
                from_date = (now - timedelta(days=days)).date().isoformat()
                to_date = now.date().isoformat()
            return {"from_date": from_date, "to_date": to_date}

        if incremental:
            since = now - timedelta(days=self.options.incremental_days)
            return {"modified_since": since.strftime("%Y-%m-%dT%H:%M:%SZ")}
        return {}

    async def process_records(
        self,
        resource_type: Any,
        records: List[Dict[str, Any]],
        pulled_at: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Ingest already-fetched records of one resource type.

        Returns:
            The resource's running metrics for this run
        """
        handler = get_handler(resource_type)
        pulled_at = pulled_at or self.clock()
        return await self._process_batch(handler, [(record, None) for record in records], pulled_at)

    async def replay_raw_events(
        self,
        resource_type: Any,
        source_run_id: Optional[int] = None
    ) -> Dict[str, int]:
        """Renormalize stored raw payloads, optionally only those of ``source_run_id``."""
        handler = get_handler(resource_type)
        events = await self.raw_events.events_for(handler.resource_type.value, source_run_id)
        logger.info(f"Replaying {len(events)} raw {handler.resource_type.value} events")
        items = [(event.payload_json or {}, event.id) for event in events]
        return await self._process_batch(handler, items, self.clock())

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def _tracker(self, resource_type: ResourceType) -> ResourceSyncTracker:
        trackers = self.sync.trackers
        if resource_type not in trackers:
            trackers[resource_type] = ResourceSyncTracker(self.sync.run, resource_type.value)
        return trackers[resource_type]

    async def _process_batch(
        self,
        handler: ResourceHandler,
        items: List[Tuple[Dict[str, Any], Optional[int]]],
        pulled_at: datetime
    ) -> Dict[str, int]:
        tracker = self._tracker(handler.resource_type)
        await self._prefetch(handler, [record for record, _ in items])

        try:
            for index, (record, raw_event_id) in enumerate(items):
                self.sync.cancel_token.raise_if_cancelled()
                result = await self._process_record(handler, record, pulled_at, raw_event_id)
                self._record_outcome(handler, tracker, result, index)
        except SyncCancelledError:
            # Keep everything processed so far
            tracker.finish()
            await self.db.commit()
            raise

        metrics = tracker.finish()
        await self.db.commit()
        return metrics

    async def _prefetch(self, handler: ResourceHandler, records: List[Dict[str, Any]]) -> None:
        """One bulk lookup per referenced entity kind."""
        for ref in handler.references:
            external_ids = {ref.extract(record) for record in records} - {None}
            await self.sync.cache.prefetch(ref.model, external_ids)

    async def _resolve_references(
        self,
        handler: ResourceHandler,
        record: Dict[str, Any]
    ) -> Tuple[Dict[str, Optional[int]], Optional[str]]:
        """
        Returns:
            (foreign key values, skip reason). A skip reason means the record
            must not be written.
        """
        values: Dict[str, Optional[int]] = {}
        for ref in handler.references:
            external_ref = ref.extract(record)
            if external_ref is None:
                if ref.required:
                    return {}, f"missing required {ref.column}"
                values[ref.column] = None
                continue

            internal_id = await self.sync.cache.resolve(ref.model, external_ref)
            if internal_id is None:
                return {}, f"{ref.model.__tablename__} {external_ref} not found for {ref.column}"
            values[ref.column] = internal_id
        return values, None

    def _run_columns(self, handler: ResourceHandler, pulled_at: datetime) -> Dict[str, Any]:
        columns = handler.model.__table__.columns
        values: Dict[str, Any] = {}
        if "sync_run_id" in columns:
            values["sync_run_id"] = self.sync.run.id
        if "pulled_at" in columns:
            values["pulled_at"] = pulled_at
        return values

    async def _process_record(
        self,
        handler: ResourceHandler,
        record: Dict[str, Any],
        pulled_at: datetime,
        raw_event_id: Optional[int] = None
    ) -> RecordResult:
        """
        Raw event, references, mapping and upsert for one record.

        The raw event is written in its own savepoint so a record that fails
        later keeps its payload for debugging. Mapping and upsert share a
        second savepoint and roll back together.
        """
        rt = handler.resource_type.value
        external_id = handler.extract_external_id(record)
        if external_id is None:
            return RecordResult(
                RecordOutcome.ERRORED,
                reason=f"missing or invalid {' / '.join(handler.id_fields)}"
            )

        try:
            if raw_event_id is None:
                async with self.db.begin_nested():
                    raw_event_id = await self.raw_events.store(
                        rt, external_id, record, self.sync.run.id, pulled_at
                    )

            references, skip_reason = await self._resolve_references(handler, record)
            if skip_reason:
                return RecordResult(RecordOutcome.SKIPPED, external_id, reason=skip_reason)

            async with self.db.begin_nested():
                row = handler.mapper(record, external_id)
                values = row.model_dump()
                values.update(references)
                values.update(self._run_columns(handler, pulled_at))

                internal_id, created = await self.loader.upsert(
                    handler.model,
                    handler.key_column,
                    handler.key_value(external_id),
                    values
                )
                await self.raw_events.mark_processed(raw_event_id, self.clock())

        except Exception as e:
            return RecordResult(
                RecordOutcome.ERRORED,
                external_id,
                reason=f"{type(e).__name__}: {str(e)}"
            )

        if not handler.numeric_key:
            self.sync.cache.remember(handler.model, external_id, internal_id)

        return RecordResult(
            RecordOutcome.CREATED if created else RecordOutcome.UPDATED,
            external_id,
            internal_id
        )

    def _record_outcome(
        self,
        handler: ResourceHandler,
        tracker: ResourceSyncTracker,
        result: RecordResult,
        index: int
    ) -> None:
        if result.outcome == RecordOutcome.CREATED:
            self.sync.processed_count += 1
            tracker.record_created()
        elif result.outcome == RecordOutcome.UPDATED:
            self.sync.processed_count += 1
            tracker.record_updated()
        elif result.outcome == RecordOutcome.SKIPPED:
            tracker.record_skipped(result.reason)
        else:
            label = result.external_id or f"record #{index + 1}"
            message = f"{handler.resource_type.value} {label}: {result.reason}"
            self.sync.add_error(message)
            tracker.record_error(
                message,
                context={
                    "sync_run_id": self.sync.run.id,
                    "external_id": result.external_id,
                    "position": index,
                }
            )

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    async def _process_utility_expenses(self) -> None:
        run_id = self.sync.run.id
        bill_count = await self.db.scalar(
            select(func.count(BillDetail.id)).where(BillDetail.sync_run_id == run_id)
        )
        if not bill_count:
            return

        try:
            stats = await UtilityExpenseProcessor(self.db).process_from_bill_details(run_id)
            logger.info(
                f"Utility expenses processed during sync run {run_id}",
                extra={"bill_details_processed": bill_count, "utility_expense_stats": stats}
            )
        except Exception as e:
            self.sync.add_error(f"Failed to process utility expenses: {str(e)}")
            logger.error(
                f"Failed to process utility expenses for sync run {run_id}: {str(e)}",
                extra={"error_context": {"sync_run_id": run_id}}
            )
