from sqlalchemy import Column, String, Boolean
from models.base import Base, BigIntPK, TimestampMixin


class User(TimestampMixin, Base):
    """Operator account. Receives failure alerts when no recipient list is configured."""
    __tablename__ = "users"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
