"""
Shared FastAPI dependencies
"""

from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_session
from ingestion.alerts import AlertPolicy


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session"""
    async for session in get_session():
        yield session


def get_alert_policy(request: Request) -> AlertPolicy:
    """Alert policy from app state, falling back to settings"""
    policy = getattr(request.app.state, "alert_policy", None)
    return policy or AlertPolicy.from_settings(settings)
