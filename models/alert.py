from sqlalchemy import Column, BigInteger, String, Integer, DateTime, ForeignKey
from datetime import datetime
from typing import Optional, Dict, Any
from models.base import Base, BigIntPK, JSONType, TimestampMixin

# Failure details kept per alert row
MAX_FAILURE_DETAILS = 10


class SyncFailureAlert(TimestampMixin, Base):
    """
    Consecutive-failure tracker for one monitored connection.

    Only a successful run resets ``consecutive_failures``; acknowledging an
    alert silences further notifications until the next recorded failure.
    """
    __tablename__ = "sync_failure_alerts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    connection_id = Column(BigInteger, ForeignKey("appfolio_connections.id"), nullable=False, unique=True)

    consecutive_failures = Column(Integer, nullable=False, default=0)
    last_alert_sent_at = Column(DateTime, nullable=True)
    acknowledged_at = Column(DateTime, nullable=True)
    acknowledged_by = Column(String(255), nullable=True)
    failure_details = Column(JSONType, nullable=True)

    def record_failure(self, details: Dict[str, Any], now: Optional[datetime] = None) -> None:
        now = now or datetime.utcnow()
        self.consecutive_failures = (self.consecutive_failures or 0) + 1

        entries = list(self.failure_details or [])
        entries.append({**details, "failed_at": now.isoformat()})
        self.failure_details = entries[-MAX_FAILURE_DETAILS:]

        # A new failure re-arms a previously acknowledged alert
        self.acknowledged_at = None
        self.acknowledged_by = None

    def reset_failures(self) -> None:
        self.consecutive_failures = 0
        self.failure_details = []
        self.acknowledged_at = None
        self.acknowledged_by = None

    def mark_alert_sent(self, now: Optional[datetime] = None) -> None:
        self.last_alert_sent_at = now or datetime.utcnow()

    def acknowledge(self, user: str, now: Optional[datetime] = None) -> None:
        self.acknowledged_at = now or datetime.utcnow()
        self.acknowledged_by = user

    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    def is_active(self, threshold: int) -> bool:
        return (self.consecutive_failures or 0) >= threshold and not self.is_acknowledged()

    def should_send_alert(self, cooldown_minutes: int, now: Optional[datetime] = None) -> bool:
        if self.is_acknowledged():
            return False
        if self.last_alert_sent_at is None:
            return True
        now = now or datetime.utcnow()
        elapsed_minutes = (now - self.last_alert_sent_at).total_seconds() / 60
        return elapsed_minutes >= cooldown_minutes
