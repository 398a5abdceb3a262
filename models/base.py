from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, BigInteger, JSON, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def enum_column_type(enum_cls, name: str) -> Enum:
    """Store enum values (not member names) so rows read like the API vocabulary."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class TimestampMixin:
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# ============================================================================
# ENUMS
# ============================================================================

class SyncMode(str, enum.Enum):
    """Sync run mode"""
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncStatus(str, enum.Enum):
    """Sync run status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ConnectionStatus(str, enum.Enum):
    NOT_CONFIGURED = "not_configured"
    CONNECTED = "connected"
    ERROR = "error"


class UnitStatus(str, enum.Enum):
    OCCUPIED = "occupied"
    VACANT = "vacant"
    NOT_READY = "not_ready"


class LeaseStatus(str, enum.Enum):
    ACTIVE = "active"
    PAST = "past"
    FUTURE = "future"


class PersonType(str, enum.Enum):
    TENANT = "tenant"
    OWNER = "owner"
    VENDOR = "vendor"


class TransactionType(str, enum.Enum):
    CHARGE = "charge"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"


class WorkOrderStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkOrderPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    EMERGENCY = "emergency"
