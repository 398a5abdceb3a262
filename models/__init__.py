"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, portable column types and shared enums
    connection: AppFolio connection credentials and health
    sync_run: Sync run state machine, metrics and error sample
    raw_event: Captured API payloads keyed by (resource_type, external_id, pulled_at)
    property / leasing / vendor / billing: Canonical entities keyed by external id
    alert: Consecutive-failure alert state per connection
    user: Operators (alert recipients and acknowledgers)

Importing this package registers every table on ``Base.metadata``.

Usage:
    from models import SyncRun, Property, Unit
    from models.base import SyncMode, SyncStatus
"""

from models.base import Base
from models.connection import AppfolioConnection
from models.sync_run import SyncRun
from models.raw_event import RawEvent
from models.property import Property, Unit
from models.leasing import Person, Lease, LedgerTransaction
from models.vendor import Vendor, WorkOrder
from models.billing import BillDetail, UtilityAccount, UtilityExpense
from models.alert import SyncFailureAlert
from models.user import User

__all__ = [
    "Base",
    "AppfolioConnection",
    "SyncRun",
    "RawEvent",
    "Property",
    "Unit",
    "Person",
    "Lease",
    "LedgerTransaction",
    "Vendor",
    "WorkOrder",
    "BillDetail",
    "UtilityAccount",
    "UtilityExpense",
    "SyncFailureAlert",
    "User",
]
