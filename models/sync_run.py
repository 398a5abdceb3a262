from sqlalchemy import Column, BigInteger, Integer, Text, DateTime, ForeignKey, Index
from datetime import datetime, date
from typing import Optional, Dict, Any, Tuple
from models.base import Base, BigIntPK, JSONType, TimestampMixin, SyncMode, SyncStatus, enum_column_type
from core.exceptions import InvalidStateTransition

# Resource errors kept per resource type on the run
MAX_RESOURCE_ERRORS = 10

_ALLOWED_TRANSITIONS = {
    SyncStatus.PENDING: {SyncStatus.RUNNING, SyncStatus.FAILED},
    SyncStatus.RUNNING: {SyncStatus.COMPLETED, SyncStatus.FAILED},
    SyncStatus.COMPLETED: set(),
    SyncStatus.FAILED: set(),
}


class SyncRun(TimestampMixin, Base):
    """
    One ingestion attempt across the configured resource types.

    Purpose:
    - Audit trail of every sync (rows are never deleted)
    - Per-resource metrics and a bounded sample of record errors
    - Input to the failure alert state machine

    States: pending -> running -> completed | failed. Terminal states
    reject further transitions.
    """
    __tablename__ = "sync_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    connection_id = Column(BigInteger, ForeignKey("appfolio_connections.id"), nullable=True, index=True)

    mode = Column(enum_column_type(SyncMode, "sync_mode"), nullable=False, default=SyncMode.INCREMENTAL)
    status = Column(enum_column_type(SyncStatus, "sync_status"), nullable=False, default=SyncStatus.PENDING, index=True)

    started_at = Column(DateTime, nullable=True)
    ended_at = Column(DateTime, nullable=True)

    resources_synced = Column(Integer, nullable=False, default=0)
    errors_count = Column(Integer, nullable=False, default=0)
    error_summary = Column(Text, nullable=True)

    # resource_metrics, resource_errors, custom_date_range
    run_metadata = Column("metadata", JSONType, nullable=True)

    __table_args__ = (
        Index("idx_sync_run_connection_started", "connection_id", "started_at"),
    )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: SyncStatus) -> None:
        current = SyncStatus(self.status or SyncStatus.PENDING)
        if target not in _ALLOWED_TRANSITIONS[current]:
            raise InvalidStateTransition(
                f"Cannot move sync run from {current.value} to {target.value}",
                context={"sync_run_id": self.id}
            )
        self.status = target

    def mark_as_running(self, now: Optional[datetime] = None) -> None:
        self._transition(SyncStatus.RUNNING)
        self.started_at = now or datetime.utcnow()

    def mark_as_completed(self, resources_synced: int = 0, now: Optional[datetime] = None) -> None:
        self._transition(SyncStatus.COMPLETED)
        self.ended_at = now or datetime.utcnow()
        self.resources_synced = resources_synced

    def mark_as_completed_with_errors(
        self,
        resources_synced: int,
        errors_count: int,
        error_summary: str,
        now: Optional[datetime] = None
    ) -> None:
        """Partial success: the run still completes but carries its error tally."""
        self.mark_as_completed(resources_synced, now=now)
        self.errors_count = errors_count
        self.error_summary = error_summary

    def mark_as_failed(self, error_summary: str, errors_count: int = 1, now: Optional[datetime] = None) -> None:
        self._transition(SyncStatus.FAILED)
        self.ended_at = now or datetime.utcnow()
        self.errors_count = errors_count
        self.error_summary = error_summary

    @property
    def is_terminal(self) -> bool:
        return self.status in (SyncStatus.COMPLETED, SyncStatus.FAILED)

    @property
    def duration_seconds(self) -> Optional[int]:
        if not self.started_at or not self.ended_at:
            return None
        return int((self.ended_at - self.started_at).total_seconds())

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def _metadata(self) -> Dict[str, Any]:
        # Copy so the reassignment below is seen as a change by the ORM
        return dict(self.run_metadata or {})

    def get_resource_metrics(self) -> Dict[str, Dict[str, int]]:
        return (self.run_metadata or {}).get("resource_metrics", {})

    def update_resource_metrics(self, resource_type: str, metrics: Dict[str, int]) -> None:
        data = self._metadata()
        resource_metrics = dict(data.get("resource_metrics", {}))
        resource_metrics[resource_type] = dict(metrics)
        data["resource_metrics"] = resource_metrics
        self.run_metadata = data

    def add_resource_error(self, resource_type: str, message: str, now: Optional[datetime] = None) -> None:
        data = self._metadata()
        resource_errors = dict(data.get("resource_errors", {}))
        entries = list(resource_errors.get(resource_type, []))
        entries.append({
            "message": message,
            "timestamp": (now or datetime.utcnow()).isoformat(),
        })
        resource_errors[resource_type] = entries[-MAX_RESOURCE_ERRORS:]
        data["resource_errors"] = resource_errors
        self.run_metadata = data

    def get_resource_errors(self, resource_type: Optional[str] = None):
        errors = (self.run_metadata or {}).get("resource_errors", {})
        if resource_type is not None:
            return errors.get(resource_type, [])
        return errors

    def set_custom_date_range(self, from_date: date, to_date: date) -> None:
        data = self._metadata()
        data["custom_date_range"] = {
            "from_date": from_date.isoformat(),
            "to_date": to_date.isoformat(),
        }
        self.run_metadata = data

    def get_custom_date_range(self) -> Optional[Tuple[str, str]]:
        custom = (self.run_metadata or {}).get("custom_date_range")
        if not custom or not custom.get("from_date") or not custom.get("to_date"):
            return None
        return custom["from_date"], custom["to_date"]

    def get_summary(self) -> Dict[str, Any]:
        metrics = self.get_resource_metrics()
        totals = {"created": 0, "updated": 0, "skipped": 0, "errors": 0, "duration_ms": 0}
        for resource_metrics in metrics.values():
            for key in totals:
                totals[key] += resource_metrics.get(key, 0)

        return {
            "status": SyncStatus(self.status).value if self.status else None,
            "mode": SyncMode(self.mode).value if self.mode else None,
            "duration_seconds": self.duration_seconds,
            "total_created": totals["created"],
            "total_updated": totals["updated"],
            "total_skipped": totals["skipped"],
            "total_errors": totals["errors"],
            "total_duration_ms": totals["duration_ms"],
            "resources_synced": self.resources_synced,
            "errors_count": self.errors_count,
            "error_summary": self.error_summary,
            "resource_metrics": metrics,
            "resource_errors": self.get_resource_errors(),
        }
