"""
Pydantic schemas for canonical entity rows produced by the normalizer.

Each row carries its idempotency key (``external_id``, or ``txn_id`` for
bill details) plus the mapped columns. Foreign references are resolved by
the ingestion engine and are not part of these rows, except where the
canonical table keeps the external reference for traceability.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import date, datetime
from models.base import (
    UnitStatus, LeaseStatus, PersonType, TransactionType,
    WorkOrderStatus, WorkOrderPriority
)


class CanonicalRow(BaseModel):
    """Base for all canonical rows"""

    external_id: str = Field(..., min_length=1, max_length=255)

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, v):
        if v is None:
            return v
        return str(v).strip()


class PropertyRow(CanonicalRow):
    name: str = Field(..., min_length=1, max_length=255)
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    county: Optional[str] = None
    property_type: Optional[str] = "residential"
    unit_count: int = 0
    is_active: bool = True
    portfolio: Optional[str] = None
    portfolio_id: Optional[int] = None
    year_built: Optional[int] = None
    total_sqft: Optional[int] = None


class UnitRow(CanonicalRow):
    unit_number: str = "Unknown"
    unit_type: Optional[str] = None
    sqft: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    status: UnitStatus = UnitStatus.VACANT
    market_rent: Optional[float] = None
    advertised_rent: Optional[float] = None
    is_active: bool = True
    rentable: bool = True


class PersonRow(CanonicalRow):
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    type: PersonType = PersonType.TENANT
    is_active: bool = True


class VendorRow(CanonicalRow):
    company_name: str = "Unknown Vendor"
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip: Optional[str] = None
    vendor_type: Optional[str] = None
    vendor_trades: Optional[str] = None
    workers_comp_expires: Optional[date] = None
    liability_ins_expires: Optional[date] = None
    auto_ins_expires: Optional[date] = None
    state_lic_expires: Optional[date] = None
    do_not_use: bool = False
    is_active: bool = True


class LeaseRow(CanonicalRow):
    start_date: date
    end_date: Optional[date] = None
    rent: float = 0.0
    security_deposit: Optional[float] = None
    status: LeaseStatus = LeaseStatus.ACTIVE


class LedgerTransactionRow(CanonicalRow):
    transaction_date: date
    type: TransactionType = TransactionType.CHARGE
    amount: float = Field(0.0, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    balance: Optional[float] = None


class WorkOrderRow(CanonicalRow):
    vendor_name: Optional[str] = None
    opened_at: datetime
    closed_at: Optional[datetime] = None
    status: WorkOrderStatus = WorkOrderStatus.OPEN
    priority: WorkOrderPriority = WorkOrderPriority.NORMAL
    category: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    vendor_bill_amount: Optional[float] = None
    estimate_amount: Optional[float] = None
    vendor_trade: Optional[str] = None
    work_order_type: Optional[str] = None


class BillDetailRow(BaseModel):
    """
    Bill detail rows are keyed by the numeric transaction id, never by a
    defaulted value, so a missing txn_id must be rejected before this point.
    """

    txn_id: int = Field(..., gt=0)
    payable_invoice_detail_id: Optional[str] = None
    reference_number: Optional[str] = None
    bill_date: Optional[date] = None
    due_date: Optional[date] = None
    description: Optional[str] = None
    gl_account: Optional[str] = None
    gl_account_name: Optional[str] = None
    gl_account_number: Optional[str] = None
    gl_account_id: Optional[str] = None
    property_external_id: Optional[str] = None
    unit_external_id: Optional[str] = None
    payee_name: Optional[str] = None
    party_id: Optional[str] = None
    party_type: Optional[str] = None
    vendor_external_id: Optional[str] = None
    vendor_account_number: Optional[str] = None
    paid: Optional[float] = None
    unpaid: Optional[float] = None
    quantity: Optional[float] = None
    rate: Optional[float] = None
    check_number: Optional[str] = None
    payment_date: Optional[date] = None
    cash_account: Optional[str] = None
    bank_account: Optional[str] = None
    other_payment_type: Optional[str] = None
    work_order_number: Optional[str] = None
    work_order_external_id: Optional[str] = None
    work_order_assignee: Optional[str] = None
    work_order_issue: Optional[str] = None
    service_request_id: Optional[str] = None
    purchase_order_number: Optional[str] = None
    purchase_order_id: Optional[str] = None
    service_from: Optional[date] = None
    service_to: Optional[date] = None
    approval_status: Optional[str] = None
    approved_by: Optional[str] = None
    last_approver: Optional[str] = None
    next_approvers: Optional[str] = None
    days_pending_approval: Optional[int] = None
    board_approval_status: Optional[str] = None
    cost_center_name: Optional[str] = None
    cost_center_number: Optional[str] = None
    created_by: Optional[str] = None
    txn_created_at: Optional[datetime] = None
    txn_updated_at: Optional[datetime] = None
