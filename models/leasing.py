from sqlalchemy import Column, BigInteger, String, Float, Boolean, Date, Text, ForeignKey, Index
from models.base import (
    Base, BigIntPK, TimestampMixin,
    LeaseStatus, PersonType, TransactionType, enum_column_type
)


class Person(TimestampMixin, Base):
    __tablename__ = "people"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    type = Column(enum_column_type(PersonType, "person_type"), nullable=False, default=PersonType.TENANT)
    is_active = Column(Boolean, nullable=False, default=True)


class Lease(TimestampMixin, Base):
    """
    Canonical lease row.

    Populated from two resources: ``leases`` (keyed by lease id) and
    ``rent_roll`` (keyed by occupancy_id, no tenant linkage stored).
    """
    __tablename__ = "leases"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)
    unit_id = Column(BigInteger, ForeignKey("units.id"), nullable=False, index=True)
    person_id = Column(BigInteger, ForeignKey("people.id"), nullable=True, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    rent = Column(Float, nullable=False, default=0)
    security_deposit = Column(Float, nullable=True)
    status = Column(enum_column_type(LeaseStatus, "lease_status"), nullable=False, default=LeaseStatus.ACTIVE)

    __table_args__ = (
        Index("idx_lease_unit_dates", "unit_id", "start_date", "end_date"),
    )


class LedgerTransaction(TimestampMixin, Base):
    __tablename__ = "ledger_transactions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)
    property_id = Column(BigInteger, ForeignKey("properties.id"), nullable=True, index=True)
    unit_id = Column(BigInteger, ForeignKey("units.id"), nullable=True, index=True)

    transaction_date = Column(Date, nullable=False)
    type = Column(enum_column_type(TransactionType, "transaction_type"), nullable=False, default=TransactionType.CHARGE)
    amount = Column(Float, nullable=False, default=0)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    balance = Column(Float, nullable=True)
