"""
Unit occupancy derived from leases after a rent roll pass.
"""

from datetime import date
from typing import Dict, Optional
from sqlalchemy import select, update, and_, or_, exists, func
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from models.base import UnitStatus
from models.property import Unit
from models.leasing import Lease

logger = logging.getLogger(__name__)


def _active_lease_exists(today: date):
    return exists(
        select(Lease.id).where(
            Lease.unit_id == Unit.id,
            Lease.start_date <= today,
            or_(Lease.end_date.is_(None), Lease.end_date >= today),
        )
    )


async def update_unit_status_from_leases(
    session: AsyncSession,
    today: Optional[date] = None
) -> Dict[str, int]:
    """
    Recompute occupancy for every unit not flagged ``not_ready``.

    A unit is occupied when any lease has ``start_date <= today`` and
    ``end_date >= today`` or no end date; vacant otherwise. Only units
    whose status actually changes are written.

    Returns:
        Counts of units checked, newly occupied and newly vacant
    """
    today = today or date.today()
    has_active_lease = _active_lease_exists(today)
    candidates = Unit.status != UnitStatus.NOT_READY

    checked = await session.scalar(select(func.count(Unit.id)).where(candidates))

    occupied = await session.execute(
        update(Unit)
        .where(and_(candidates, Unit.status != UnitStatus.OCCUPIED, has_active_lease))
        .values(status=UnitStatus.OCCUPIED)
        .execution_options(synchronize_session=False)
    )
    vacated = await session.execute(
        update(Unit)
        .where(and_(candidates, Unit.status != UnitStatus.VACANT, ~has_active_lease))
        .values(status=UnitStatus.VACANT)
        .execution_options(synchronize_session=False)
    )

    stats = {
        "units_checked": checked or 0,
        "units_occupied": occupied.rowcount,
        "units_vacated": vacated.rowcount,
    }
    logger.info(
        f"Updated unit statuses from leases: {stats['units_checked']} checked, "
        f"{stats['units_occupied']} now occupied, {stats['units_vacated']} now vacant"
    )
    return stats
