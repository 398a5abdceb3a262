from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime
from typing import Optional
from models.base import Base, BigIntPK, TimestampMixin, ConnectionStatus, enum_column_type


class AppfolioConnection(TimestampMixin, Base):
    """
    Persisted credentials and health of one AppFolio reporting account.

    Status only reflects the outcome of the most recent sync or connection
    test; it has no influence on the API client's retry behaviour.
    """
    __tablename__ = "appfolio_connections"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, default="default")

    client_id = Column(String(255), nullable=True)
    client_secret = Column(String(255), nullable=True)
    database = Column(String(100), nullable=True)  # subdomain of appfolio.com
    api_base_url = Column(String(255), nullable=True)

    status = Column(
        enum_column_type(ConnectionStatus, "connection_status"),
        nullable=False,
        default=ConnectionStatus.NOT_CONFIGURED
    )
    last_success_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.database)

    def mark_as_success(self, now: Optional[datetime] = None) -> None:
        self.status = ConnectionStatus.CONNECTED
        self.last_success_at = now or datetime.utcnow()
        self.last_error = None

    def mark_as_error(self, message: str) -> None:
        self.status = ConnectionStatus.ERROR
        self.last_error = message
