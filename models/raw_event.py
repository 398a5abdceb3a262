from sqlalchemy import Column, BigInteger, String, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK, JSONType


class RawEvent(Base):
    """
    Captured copy of one record fetched from the reporting API.

    Purpose:
    - Audit trail for every ingested record
    - Replay and renormalization without re-fetching
    - Locating the exact payload behind a record-level error

    Design Decisions:
    - Keyed by (resource_type, external_id, pulled_at) because the same
      external id legitimately reappears across runs and overlapping pages
    - Write-once per key: a collision overwrites the payload in place
    """
    __tablename__ = "raw_events"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sync_run_id = Column(BigInteger, ForeignKey("sync_runs.id"), nullable=True, index=True)

    resource_type = Column(String(50), nullable=False)
    external_id = Column(String(255), nullable=False)
    pulled_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    payload_json = Column(JSONType, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("resource_type", "external_id", "pulled_at", name="uq_raw_event_key"),
        Index("idx_raw_event_resource_run", "resource_type", "sync_run_id"),
    )

    def mark_as_processed(self, now: datetime = None) -> None:
        self.processed_at = now or datetime.utcnow()
