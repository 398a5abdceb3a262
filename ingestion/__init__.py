"""
AppFolio sync pipeline: fetch, normalize, upsert and report.

Modules:
    resources: Resource types, processing order and per-resource handlers
    runner: Ingestion engine driving one sync run through its lifecycle
    sync_job: Entry point creating a run for a connection and finishing it
    scheduler: APScheduler jobs for incremental and daily full syncs
    business_hours: Incremental sync cadence inside and outside business hours
    tracker: Per-resource created / updated / skipped / error counters
    entity_cache: Run-scoped external id -> internal id resolution
    unit_status: Occupancy derived from active leases
    utility_expenses: Utility expenses derived from bill details
    alerts / notifications: Consecutive failure alerts and email delivery
    cancellation: Cooperative cancellation token

Subpackages:
    extractors: AppFolio Reports API client with retry and pagination
    transformers: Report row normalization into canonical rows
    loaders: Idempotent upserts and raw event storage

Pipeline:
    For each configured resource type, in dependency order:

    1. Fetch every page of the report
    2. Store each record as a raw event
    3. Resolve foreign references, normalize and upsert in a savepoint

    A bad record is counted and skipped; a resource whose fetch fails
    fails the run after the remaining resources have been processed.

Usage:
    from ingestion.sync_job import run_sync
    from models.base import SyncMode

    run = await run_sync(session, connection, SyncMode.INCREMENTAL)
    print(run.get_summary())
"""

__all__ = [
    "IngestionEngine",
    "SyncOptions",
    "AppfolioClient",
    "SyncScheduler",
    "SyncFailureAlertService",
    "run_sync",
]
