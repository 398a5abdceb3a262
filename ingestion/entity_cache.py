"""
Run-scoped mapping from external id to internal id per entity kind.
"""

from typing import Dict, Iterable, Optional, Type
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.base import Base

logger = logging.getLogger(__name__)


class EntityResolutionCache:
    """
    Memoized ``external_id -> id`` lookups for referenced entities.

    Populated by one bulk ``IN`` query per entity kind before a batch, then
    lazily on a miss. Owned by a single sync run and never shared, so no
    locking is needed.
    """

    def __init__(self, session: AsyncSession):
        self.db = session
        self._ids: Dict[Type[Base], Dict[str, int]] = {}
        self.queries = 0

    def _bucket(self, model: Type[Base]) -> Dict[str, int]:
        return self._ids.setdefault(model, {})

    async def prefetch(self, model: Type[Base], external_ids: Iterable[str]) -> int:
        """Bulk-load every id not already cached. Returns how many were found."""
        bucket = self._bucket(model)
        wanted = {str(e) for e in external_ids if e} - bucket.keys()
        if not wanted:
            return 0

        result = await self.db.execute(
            select(model.external_id, model.id).where(model.external_id.in_(wanted))
        )
        self.queries += 1
        found = 0
        for external_id, internal_id in result.all():
            bucket[external_id] = internal_id
            found += 1

        logger.debug(f"Prefetched {found}/{len(wanted)} {model.__tablename__} ids")
        return found

    async def resolve(self, model: Type[Base], external_id: Optional[str]) -> Optional[int]:
        """Cached lookup, falling back to a single-row query on a miss."""
        if not external_id:
            return None

        bucket = self._bucket(model)
        if external_id in bucket:
            return bucket[external_id]

        result = await self.db.execute(
            select(model.id).where(model.external_id == external_id)
        )
        self.queries += 1
        internal_id = result.scalar_one_or_none()
        if internal_id is not None:
            bucket[external_id] = internal_id
        return internal_id

    def remember(self, model: Type[Base], external_id: str, internal_id: int) -> None:
        self._bucket(model)[external_id] = internal_id

    def clear(self) -> None:
        self._ids.clear()
