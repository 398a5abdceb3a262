"""
Sync run history and failure alert endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db, get_alert_policy
from schemas.api import (
    AcknowledgeRequest,
    AlertResponse,
    AlertStatusResponse,
    PaginationMetadata,
    SyncRunDetailResponse,
    SyncRunListResponse,
    SyncRunResponse,
)
from ingestion.alerts import AlertPolicy, SyncFailureAlertService
from models.base import SyncStatus
from models.sync_run import SyncRun
from typing import List, Optional
import math
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])


def _run_response(run: SyncRun) -> SyncRunResponse:
    return SyncRunResponse(
        id=run.id,
        connection_id=run.connection_id,
        mode=run.mode,
        status=run.status,
        started_at=run.started_at,
        ended_at=run.ended_at,
        duration_seconds=run.duration_seconds,
        resources_synced=run.resources_synced,
        errors_count=run.errors_count,
        error_summary=run.error_summary,
        created_at=run.created_at,
    )


@router.get("/runs", response_model=SyncRunListResponse)
async def list_sync_runs(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Runs per page"),
    status: Optional[SyncStatus] = Query(None, description="Filter by run status"),
    connection_id: Optional[int] = Query(None, description="Filter by connection"),
    db: AsyncSession = Depends(get_db)
):
    """Sync run history, newest first."""
    request_id = getattr(request.state, "request_id", f"req_{uuid.uuid4().hex[:12]}")
    logger.info(f"[{request_id}] GET /sync/runs - page={page}, page_size={page_size}, status={status}")

    filters = []
    if status is not None:
        filters.append(SyncRun.status == status)
    if connection_id is not None:
        filters.append(SyncRun.connection_id == connection_id)

    total_items = await db.scalar(select(func.count(SyncRun.id)).where(*filters)) or 0

    result = await db.execute(
        select(SyncRun)
        .where(*filters)
        .order_by(SyncRun.created_at.desc(), SyncRun.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    runs = result.scalars().all()

    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0

    return SyncRunListResponse(
        runs=[_run_response(run) for run in runs],
        pagination=PaginationMetadata(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        )
    )


@router.get("/runs/{run_id}", response_model=SyncRunDetailResponse)
async def get_sync_run(run_id: int, db: AsyncSession = Depends(get_db)):
    """One sync run with per-resource metrics and error samples."""
    run = await db.get(SyncRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Sync run {run_id} not found")

    summary = run.get_summary()
    custom = run.get_custom_date_range()

    return SyncRunDetailResponse(
        **_run_response(run).model_dump(),
        total_created=summary["total_created"],
        total_updated=summary["total_updated"],
        total_skipped=summary["total_skipped"],
        total_errors=summary["total_errors"],
        resource_metrics=summary["resource_metrics"],
        resource_errors=summary["resource_errors"],
        custom_date_range={"from_date": custom[0], "to_date": custom[1]} if custom else None,
    )


@router.get("/alerts", response_model=List[AlertResponse])
async def list_active_alerts(
    db: AsyncSession = Depends(get_db),
    policy: AlertPolicy = Depends(get_alert_policy)
):
    """Unacknowledged alerts at or above the failure threshold."""
    alerts = await SyncFailureAlertService(db, policy).get_active_alerts()
    return [AlertResponse.model_validate(alert) for alert in alerts]


@router.get("/alerts/{connection_id}", response_model=AlertStatusResponse)
async def get_alert_status(
    connection_id: int,
    db: AsyncSession = Depends(get_db),
    policy: AlertPolicy = Depends(get_alert_policy)
):
    status = await SyncFailureAlertService(db, policy).get_alert_status(connection_id)
    return AlertStatusResponse(**status)


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
async def acknowledge_alert(
    alert_id: int,
    body: AcknowledgeRequest,
    db: AsyncSession = Depends(get_db),
    policy: AlertPolicy = Depends(get_alert_policy)
):
    """Acknowledge an alert. The failure counter is only reset by a successful run."""
    alert = await SyncFailureAlertService(db, policy).acknowledge_alert(alert_id, body.acknowledged_by)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return AlertResponse.model_validate(alert)
