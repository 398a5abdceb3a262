from sqlalchemy import (
    Column, BigInteger, String, Integer, Float, Boolean, Date, DateTime, Text, ForeignKey, Index
)
from datetime import datetime
from models.base import Base, BigIntPK, TimestampMixin


class BillDetail(TimestampMixin, Base):
    """
    Canonical bill line from bill_detail.json, keyed by the numeric txn_id.

    Property and unit are kept both as the external id reported by the API
    and as the resolved internal id, so unresolved references stay visible.
    """
    __tablename__ = "bill_details"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    txn_id = Column(BigInteger, nullable=False, unique=True, index=True)
    sync_run_id = Column(BigInteger, ForeignKey("sync_runs.id"), nullable=True, index=True)

    payable_invoice_detail_id = Column(String(100), nullable=True)
    reference_number = Column(String(255), nullable=True)
    bill_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)

    gl_account = Column(String(255), nullable=True)
    gl_account_name = Column(String(255), nullable=True)
    gl_account_number = Column(String(50), nullable=True, index=True)
    gl_account_id = Column(String(100), nullable=True)

    property_external_id = Column(String(255), nullable=True)
    property_id = Column(BigInteger, ForeignKey("properties.id"), nullable=True, index=True)
    unit_external_id = Column(String(255), nullable=True)
    unit_id = Column(BigInteger, ForeignKey("units.id"), nullable=True, index=True)

    payee_name = Column(String(255), nullable=True)
    party_id = Column(String(100), nullable=True)
    party_type = Column(String(100), nullable=True)
    vendor_external_id = Column(String(255), nullable=True)
    vendor_account_number = Column(String(255), nullable=True)

    paid = Column(Float, nullable=True)
    unpaid = Column(Float, nullable=True)
    quantity = Column(Float, nullable=True)
    rate = Column(Float, nullable=True)

    check_number = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=True)
    cash_account = Column(String(255), nullable=True)
    bank_account = Column(String(255), nullable=True)
    other_payment_type = Column(String(100), nullable=True)

    work_order_number = Column(String(100), nullable=True)
    work_order_external_id = Column(String(255), nullable=True)
    work_order_assignee = Column(String(255), nullable=True)
    work_order_issue = Column(Text, nullable=True)
    service_request_id = Column(String(100), nullable=True)
    purchase_order_number = Column(String(100), nullable=True)
    purchase_order_id = Column(String(100), nullable=True)
    service_from = Column(Date, nullable=True)
    service_to = Column(Date, nullable=True)

    approval_status = Column(String(100), nullable=True)
    approved_by = Column(String(255), nullable=True)
    last_approver = Column(String(255), nullable=True)
    next_approvers = Column(Text, nullable=True)
    days_pending_approval = Column(Integer, nullable=True)
    board_approval_status = Column(String(100), nullable=True)

    cost_center_name = Column(String(255), nullable=True)
    cost_center_number = Column(String(100), nullable=True)
    created_by = Column(String(255), nullable=True)
    txn_created_at = Column(DateTime, nullable=True)
    txn_updated_at = Column(DateTime, nullable=True)
    pulled_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def amount(self) -> float:
        return (self.paid or 0.0) + (self.unpaid or 0.0)


class UtilityAccount(TimestampMixin, Base):
    """Maps a GL account number onto a utility type (water, electric, gas, ...)."""
    __tablename__ = "utility_accounts"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    gl_account_number = Column(String(50), nullable=False, unique=True, index=True)
    gl_account_name = Column(String(255), nullable=True)
    utility_type = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class UtilityExpense(TimestampMixin, Base):
    __tablename__ = "utility_expenses"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    external_expense_id = Column(String(255), nullable=False, unique=True, index=True)
    property_id = Column(BigInteger, ForeignKey("properties.id"), nullable=False, index=True)
    bill_detail_id = Column(BigInteger, ForeignKey("bill_details.id"), nullable=True)
    utility_account_id = Column(BigInteger, ForeignKey("utility_accounts.id"), nullable=True)

    utility_type = Column(String(50), nullable=False)
    expense_date = Column(Date, nullable=True)
    period_start = Column(Date, nullable=True)
    period_end = Column(Date, nullable=True)
    amount = Column(Float, nullable=False, default=0)
    vendor_name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_utility_expense_property_date", "property_id", "expense_date"),
    )
