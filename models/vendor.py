from sqlalchemy import Column, BigInteger, String, Float, Boolean, Date, DateTime, Text, ForeignKey, Index
from models.base import (
    Base, BigIntPK, TimestampMixin,
    WorkOrderStatus, WorkOrderPriority, enum_column_type
)


class Vendor(TimestampMixin, Base):
    """Canonical vendor row, keyed by AppFolio's vendor_id."""
    __tablename__ = "vendors"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)

    company_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    address_street = Column(String(255), nullable=True)
    address_city = Column(String(100), nullable=True)
    address_state = Column(String(50), nullable=True)
    address_zip = Column(String(20), nullable=True)

    vendor_type = Column(String(100), nullable=True)
    vendor_trades = Column(Text, nullable=True)

    # Compliance dates
    workers_comp_expires = Column(Date, nullable=True)
    liability_ins_expires = Column(Date, nullable=True)
    auto_ins_expires = Column(Date, nullable=True)
    state_lic_expires = Column(Date, nullable=True)

    do_not_use = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)


class WorkOrder(TimestampMixin, Base):
    """
    Canonical work order row.

    A work order always references a property. Unit and vendor are optional
    (building-wide work orders have no unit).
    """
    __tablename__ = "work_orders"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_id = Column(String(255), nullable=False, unique=True, index=True)
    property_id = Column(BigInteger, ForeignKey("properties.id"), nullable=False, index=True)
    unit_id = Column(BigInteger, ForeignKey("units.id"), nullable=True, index=True)
    vendor_id = Column(BigInteger, ForeignKey("vendors.id"), nullable=True, index=True)
    vendor_name = Column(String(255), nullable=True)

    opened_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime, nullable=True)
    status = Column(enum_column_type(WorkOrderStatus, "work_order_status"), nullable=False, default=WorkOrderStatus.OPEN)
    priority = Column(enum_column_type(WorkOrderPriority, "work_order_priority"), nullable=False, default=WorkOrderPriority.NORMAL)
    category = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    amount = Column(Float, nullable=True)
    vendor_bill_amount = Column(Float, nullable=True)
    estimate_amount = Column(Float, nullable=True)

    vendor_trade = Column(String(255), nullable=True)
    work_order_type = Column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_work_order_status_opened", "status", "opened_at"),
    )
