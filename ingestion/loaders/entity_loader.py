"""
Idempotent create-or-update of canonical rows and raw events.
"""

from datetime import datetime
from typing import Any, Dict, Tuple, Type, Optional, List
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects import postgresql, sqlite
import logging

from models.base import Base
from models.raw_event import RawEvent

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT DO UPDATE."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert is not supported on dialect {dialect!r}")


def column_values(model: Type[Base], values: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only keys that are real columns of ``model``."""
    columns = model.__table__.columns
    return {k: v for k, v in values.items() if k in columns}


class EntityLoader:
    """
    Upsert canonical rows keyed by a unique column.

    Ensures:
    - Exactly one row per key, however often the same record is ingested
    - Every mapped column is overwritten on update (last write wins)
    - The caller learns whether the row was created or updated
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def upsert(
        self,
        model: Type[Base],
        key_column: str,
        key_value: Any,
        values: Dict[str, Any]
    ) -> Tuple[int, bool]:
        """
        INSERT ... ON CONFLICT (key) DO UPDATE.

        Returns:
            (internal id, created)
        """
        key_attr = getattr(model, key_column)
        existing = await self.db.execute(select(model.id).where(key_attr == key_value))
        created = existing.scalar_one_or_none() is None

        now = datetime.utcnow()
        row = column_values(model, values)
        row[key_column] = key_value

        insert = _insert_for(self.db)
        stmt = insert(model).values(**row, created_at=now, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key_column],
            set_={**{k: stmt.excluded[k] for k in row if k != key_column}, "updated_at": now},
        ).returning(model.id)

        result = await self.db.execute(stmt)
        return result.scalar_one(), created


class RawEventStore:
    """
    Append-mostly log of fetched payloads keyed by
    (resource_type, external_id, pulled_at).
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def store(
        self,
        resource_type: str,
        external_id: str,
        payload: Dict[str, Any],
        sync_run_id: Optional[int],
        pulled_at: datetime
    ) -> int:
        """Write once per key; a key collision replaces the payload in place."""
        insert = _insert_for(self.db)
        stmt = insert(RawEvent).values(
            resource_type=resource_type,
            external_id=external_id,
            pulled_at=pulled_at,
            payload_json=payload,
            sync_run_id=sync_run_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["resource_type", "external_id", "pulled_at"],
            set_={
                "payload_json": stmt.excluded.payload_json,
                "sync_run_id": stmt.excluded.sync_run_id,
            },
        ).returning(RawEvent.id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def mark_processed(self, raw_event_id: int, now: Optional[datetime] = None) -> None:
        await self.db.execute(
            update(RawEvent)
            .where(RawEvent.id == raw_event_id)
            .values(processed_at=now or datetime.utcnow())
        )

    async def events_for(
        self,
        resource_type: str,
        sync_run_id: Optional[int] = None
    ) -> List[RawEvent]:
        """Raw events of a resource type in fetch order, optionally limited to one run."""
        query = select(RawEvent).where(RawEvent.resource_type == resource_type)
        if sync_run_id is not None:
            query = query.where(RawEvent.sync_run_id == sync_run_id)
        result = await self.db.execute(query.order_by(RawEvent.pulled_at, RawEvent.id))
        return list(result.scalars().all())
