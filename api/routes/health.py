"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, ConnectionHealth
from models.connection import AppfolioConnection
from models.sync_run import SyncRun
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Connection status and latest sync run per connection
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")
        return HealthCheckResponse(timestamp=datetime.utcnow(), database_connected=False)

    connections = []
    result = await db.execute(select(AppfolioConnection).order_by(AppfolioConnection.id))

    for connection in result.scalars().all():
        last_run_result = await db.execute(
            select(SyncRun)
            .where(SyncRun.connection_id == connection.id)
            .order_by(SyncRun.created_at.desc(), SyncRun.id.desc())
            .limit(1)
        )
        last_run = last_run_result.scalar_one_or_none()

        connections.append(ConnectionHealth(
            connection_id=connection.id,
            name=connection.name,
            status=connection.status,
            last_success_at=connection.last_success_at,
            last_error=connection.last_error,
            last_run_id=last_run.id if last_run else None,
            last_run_status=last_run.status if last_run else None,
            last_run_started_at=last_run.started_at if last_run else None,
            last_run_ended_at=last_run.ended_at if last_run else None,
        ))

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=True,
        connections=connections
    )
