"""
Map raw AppFolio report rows into canonical rows with Pydantic validation.

Handles:
- Field name fallbacks across report shapes
- Vocabulary normalization through fixed lookup tables
- Tolerant parsing of amounts, dates, booleans and numbers
"""

from typing import Dict, Any, Optional
from datetime import date, datetime
import logging
import re

from schemas.canonical import (
    PropertyRow, UnitRow, PersonRow, VendorRow, LeaseRow,
    LedgerTransactionRow, WorkOrderRow, BillDetailRow
)
from models.base import (
    UnitStatus, LeaseStatus, PersonType, TransactionType,
    WorkOrderStatus, WorkOrderPriority
)

logger = logging.getLogger(__name__)


_MISSING = object()

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")
_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y %I:%M %p")

_GL_ACCOUNT_PREFIX = re.compile(r"^(\d+)")
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


# ============================================================================
# Vocabulary tables
# ============================================================================

UNIT_STATUS_MAP = {
    "occupied": UnitStatus.OCCUPIED,
    "rented": UnitStatus.OCCUPIED,
    "leased": UnitStatus.OCCUPIED,
    "vacant": UnitStatus.VACANT,
    "available": UnitStatus.VACANT,
    "empty": UnitStatus.VACANT,
    "not ready": UnitStatus.NOT_READY,
    "not_ready": UnitStatus.NOT_READY,
    "maintenance": UnitStatus.NOT_READY,
}

LEASE_STATUS_MAP = {
    "active": LeaseStatus.ACTIVE,
    "current": LeaseStatus.ACTIVE,
    "in_progress": LeaseStatus.ACTIVE,
    "past": LeaseStatus.PAST,
    "expired": LeaseStatus.PAST,
    "ended": LeaseStatus.PAST,
    "terminated": LeaseStatus.PAST,
    "future": LeaseStatus.FUTURE,
    "pending": LeaseStatus.FUTURE,
    "upcoming": LeaseStatus.FUTURE,
}

# rent_roll.json statuses: Current, Past, Future, Notice, Evict
RENT_ROLL_STATUS_MAP = {
    "current": LeaseStatus.ACTIVE,
    "notice": LeaseStatus.ACTIVE,
    "past": LeaseStatus.PAST,
    "evict": LeaseStatus.PAST,
    "future": LeaseStatus.FUTURE,
}

PERSON_TYPE_MAP = {
    "tenant": PersonType.TENANT,
    "resident": PersonType.TENANT,
    "renter": PersonType.TENANT,
    "owner": PersonType.OWNER,
    "landlord": PersonType.OWNER,
    "property_owner": PersonType.OWNER,
    "vendor": PersonType.VENDOR,
    "contractor": PersonType.VENDOR,
    "service_provider": PersonType.VENDOR,
}

TRANSACTION_TYPE_MAP = {
    "charge": TransactionType.CHARGE,
    "debit": TransactionType.CHARGE,
    "invoice": TransactionType.CHARGE,
    "payment": TransactionType.PAYMENT,
    "credit": TransactionType.PAYMENT,
    "receipt": TransactionType.PAYMENT,
    "adjustment": TransactionType.ADJUSTMENT,
    "correction": TransactionType.ADJUSTMENT,
}

WORK_ORDER_STATUS_MAP = {
    "open": WorkOrderStatus.OPEN,
    "new": WorkOrderStatus.OPEN,
    "pending": WorkOrderStatus.OPEN,
    "submitted": WorkOrderStatus.OPEN,
    "in_progress": WorkOrderStatus.IN_PROGRESS,
    "assigned": WorkOrderStatus.IN_PROGRESS,
    "working": WorkOrderStatus.IN_PROGRESS,
    "scheduled": WorkOrderStatus.IN_PROGRESS,
    "completed": WorkOrderStatus.COMPLETED,
    "done": WorkOrderStatus.COMPLETED,
    "closed": WorkOrderStatus.COMPLETED,
    "resolved": WorkOrderStatus.COMPLETED,
    "cancelled": WorkOrderStatus.CANCELLED,
    "canceled": WorkOrderStatus.CANCELLED,
    "rejected": WorkOrderStatus.CANCELLED,
}

WORK_ORDER_PRIORITY_MAP = {
    "low": WorkOrderPriority.LOW,
    "minor": WorkOrderPriority.LOW,
    "normal": WorkOrderPriority.NORMAL,
    "medium": WorkOrderPriority.NORMAL,
    "standard": WorkOrderPriority.NORMAL,
    "high": WorkOrderPriority.HIGH,
    "urgent": WorkOrderPriority.HIGH,
    "important": WorkOrderPriority.HIGH,
    "emergency": WorkOrderPriority.EMERGENCY,
    "critical": WorkOrderPriority.EMERGENCY,
    "immediate": WorkOrderPriority.EMERGENCY,
}


def _lookup(table: Dict[str, Any], value: Any, default):
    if value is None:
        return default
    return table.get(str(value).strip().lower(), default)


def map_unit_status(value: Any) -> UnitStatus:
    return _lookup(UNIT_STATUS_MAP, value, UnitStatus.VACANT)


def map_lease_status(value: Any) -> LeaseStatus:
    return _lookup(LEASE_STATUS_MAP, value, LeaseStatus.ACTIVE)


def map_rent_roll_status(value: Any) -> LeaseStatus:
    return _lookup(RENT_ROLL_STATUS_MAP, value, LeaseStatus.ACTIVE)


def map_person_type(value: Any) -> PersonType:
    return _lookup(PERSON_TYPE_MAP, value, PersonType.TENANT)


def map_transaction_type(value: Any) -> TransactionType:
    return _lookup(TRANSACTION_TYPE_MAP, value, TransactionType.CHARGE)


def map_work_order_status(value: Any) -> WorkOrderStatus:
    return _lookup(WORK_ORDER_STATUS_MAP, value, WorkOrderStatus.OPEN)


def map_work_order_priority(value: Any) -> WorkOrderPriority:
    return _lookup(WORK_ORDER_PRIORITY_MAP, value, WorkOrderPriority.NORMAL)


# ============================================================================
# Field access and parsing
# ============================================================================

def _get_path(record: Dict[str, Any], key: str):
    current: Any = record
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def first_value(record: Dict[str, Any], *keys: str, default=None):
    """
    Return the first non-null value among ``keys``.

    Dotted keys walk nested objects, so ``"property.id"`` reads
    ``record["property"]["id"]``.
    """
    for key in keys:
        value = _get_path(record, key)
        if value is not _MISSING and value is not None:
            return value
    return default


def external_ref(record: Dict[str, Any], *keys: str) -> Optional[str]:
    """Extract a foreign external id, treating empty strings as absent."""
    value = first_value(record, *keys)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value)
    value = str(value).strip()
    return value or None


def parse_amount(value: Any) -> Optional[float]:
    """Parse an amount that may carry currency symbols, commas or whitespace."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _AMOUNT_NOISE.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_bool(value: Any, default: bool = False) -> bool:
    """Accept native booleans and "Yes"/"No", "true"/"false", "1"/"0" strings."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1")
    return bool(value)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp; unparseable input is logged and treated as absent."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    raw = str(value).strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
        return parsed
    except ValueError:
        pass

    for fmt in _DATETIME_FORMATS + _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue

    logger.warning(f"Failed to parse datetime value: {raw!r}")
    return None


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def extract_gl_account_number(record: Dict[str, Any]) -> Optional[str]:
    """GL accounts arrive as "6210 - Water" or "6210"; keep the numeric prefix."""
    gl_account = first_value(record, "account_number", "gl_account_number", "account")
    if gl_account is None:
        return None
    match = _GL_ACCOUNT_PREFIX.match(str(gl_account).strip())
    if match:
        return match.group(1)
    return str(gl_account)


def _visible(record: Dict[str, Any]) -> bool:
    return (record.get("visibility") or "Active") == "Active"


# ============================================================================
# Per-resource mappings
# ============================================================================

def map_property(record: Dict[str, Any], external_id: str) -> PropertyRow:
    # property_name is frequently null; fall back to the address
    name = first_value(
        record, "property_name", "property_address", "property", "property_street",
        default="Unknown Property"
    )
    return PropertyRow(
        external_id=external_id,
        name=text(name) or "Unknown Property",
        address_line1=text(first_value(record, "property_street", "address")),
        address_line2=text(first_value(record, "property_street2", "address2")),
        city=text(first_value(record, "property_city", "city")),
        state=text(first_value(record, "property_state", "state")),
        zip=text(first_value(record, "property_zip", "zip")),
        county=text(first_value(record, "property_county", "county")),
        property_type=text(first_value(record, "property_type", "type", default="residential")),
        unit_count=parse_int(first_value(record, "units", "number_of_units", "unit_count")) or 0,
        is_active=_visible(record),
        portfolio=text(record.get("portfolio")),
        portfolio_id=parse_int(record.get("portfolio_id")),
        year_built=parse_int(record.get("year_built")),
        total_sqft=parse_int(record.get("sqft")),
    )


def map_unit(record: Dict[str, Any], external_id: str) -> UnitRow:
    return UnitRow(
        external_id=external_id,
        unit_number=text(first_value(record, "unit_name", "unit_number", "name")) or "Unknown",
        unit_type=text(first_value(record, "unit_type", "billed_as")),
        sqft=parse_int(record.get("sqft")),
        bedrooms=parse_int(record.get("bedrooms")),
        bathrooms=parse_float(record.get("bathrooms")),
        status=map_unit_status(first_value(record, "unit_status", "status", default="vacant")),
        market_rent=parse_amount(record.get("market_rent")),
        advertised_rent=parse_amount(record.get("advertised_rent")),
        is_active=_visible(record),
        rentable=parse_bool(record.get("rentable"), default=True),
    )


def map_vendor(record: Dict[str, Any], external_id: str) -> VendorRow:
    return VendorRow(
        external_id=external_id,
        company_name=text(first_value(record, "company_name", "name")) or "Unknown Vendor",
        contact_name=text(first_value(record, "name", "contact_name")),
        email=text(first_value(record, "email", "primary_email")),
        phone=text(first_value(record, "phone", "primary_phone")),
        address_street=text(first_value(record, "address", "street")),
        address_city=text(record.get("city")),
        address_state=text(record.get("state")),
        address_zip=text(first_value(record, "zip", "postal_code")),
        vendor_type=text(record.get("vendor_type")),
        vendor_trades=text(record.get("vendor_trades")),
        workers_comp_expires=parse_date(record.get("workers_comp_expires")),
        liability_ins_expires=parse_date(record.get("liability_ins_expires")),
        auto_ins_expires=parse_date(record.get("auto_ins_expires")),
        state_lic_expires=parse_date(record.get("state_lic_expires")),
        do_not_use=parse_bool(first_value(record, "do_not_use_for_work_order", "do_not_use")),
        is_active=_visible(record),
    )


def map_person(record: Dict[str, Any], external_id: str) -> PersonRow:
    name = text(record.get("name"))
    if not name:
        name = " ".join(
            part for part in (text(record.get("first_name")), text(record.get("last_name"))) if part
        )
    return PersonRow(
        external_id=external_id,
        name=name or "Unknown",
        email=text(first_value(record, "email", "primary_email")),
        phone=text(first_value(record, "phone", "primary_phone", "mobile")),
        type=map_person_type(first_value(record, "type", "person_type", default="tenant")),
        is_active=parse_bool(first_value(record, "active", "is_active"), default=True),
    )


def map_lease(record: Dict[str, Any], external_id: str) -> LeaseRow:
    start = parse_date(first_value(record, "start_date", "lease_start", "move_in_date"))
    return LeaseRow(
        external_id=external_id,
        start_date=start or date.today(),
        end_date=parse_date(first_value(record, "end_date", "lease_end", "move_out_date")),
        rent=parse_amount(first_value(record, "rent", "monthly_rent", "rent_amount")) or 0.0,
        security_deposit=parse_amount(first_value(record, "security_deposit", "deposit")),
        status=map_lease_status(first_value(record, "status", "lease_status", default="active")),
    )


def map_rent_roll(record: Dict[str, Any], external_id: str) -> LeaseRow:
    """Rent roll rows become leases; tenant name and id are deliberately not stored."""
    start = parse_date(first_value(record, "lease_from", "move_in"))
    return LeaseRow(
        external_id=external_id,
        start_date=start or date.today(),
        end_date=parse_date(record.get("lease_to")),
        rent=parse_amount(record.get("rent")) or 0.0,
        security_deposit=parse_amount(record.get("deposit")),
        status=map_rent_roll_status(record.get("status") or "Current"),
    )


def map_ledger_transaction(record: Dict[str, Any], external_id: str) -> LedgerTransactionRow:
    posted = parse_date(first_value(record, "date", "transaction_date", "posted_date"))
    amount = parse_amount(first_value(record, "amount", "transaction_amount")) or 0.0
    return LedgerTransactionRow(
        external_id=external_id,
        transaction_date=posted or date.today(),
        type=map_transaction_type(first_value(record, "type", "transaction_type", default="charge")),
        amount=abs(amount),
        category=text(first_value(record, "category", "charge_type", "gl_account")),
        description=text(first_value(record, "description", "memo", "notes")),
        balance=parse_amount(first_value(record, "balance", "running_balance")),
    )


def map_work_order(record: Dict[str, Any], external_id: str) -> WorkOrderRow:
    return WorkOrderRow(
        external_id=external_id,
        vendor_name=text(first_value(record, "vendor_name", "vendor")),
        opened_at=parse_datetime(record.get("created_at")) or datetime.utcnow(),
        closed_at=parse_datetime(first_value(record, "completed_on", "work_completed_on")),
        status=map_work_order_status(record.get("status") or "open"),
        priority=map_work_order_priority(record.get("priority") or "normal"),
        category=text(first_value(record, "work_order_type", "work_order_issue")),
        description=text(first_value(
            record, "job_description", "service_request_description", "instructions"
        )),
        amount=parse_amount(record.get("amount")),
        vendor_bill_amount=parse_amount(record.get("vendor_bill_amount")),
        estimate_amount=parse_amount(first_value(record, "estimate_amount", "estimate")),
        vendor_trade=text(record.get("vendor_trade")),
        work_order_type=text(record.get("work_order_type")),
    )


def parse_txn_id(value: Any) -> Optional[int]:
    """
    Strict numeric transaction id.

    Whole-number floats are accepted since JSON reports may send them.
    Missing, empty, non-numeric or non-positive values return None so the
    caller can reject the record instead of colliding on a default.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    raw = str(value).strip()
    if not raw.isdigit():
        return None
    parsed = int(raw)
    return parsed if parsed > 0 else None


def map_bill_detail(record: Dict[str, Any], external_id: str) -> BillDetailRow:
    return BillDetailRow(
        txn_id=parse_txn_id(external_id),
        payable_invoice_detail_id=text(record.get("payable_invoice_detail_id")),
        reference_number=text(record.get("reference_number")),
        bill_date=parse_date(record.get("bill_date")),
        due_date=parse_date(record.get("due_date")),
        description=text(record.get("description")),
        gl_account=text(record.get("account")),
        gl_account_name=text(record.get("account_name")),
        gl_account_number=extract_gl_account_number(record),
        gl_account_id=text(record.get("gl_account_id")),
        property_external_id=external_ref(record, "property_id"),
        unit_external_id=external_ref(record, "unit_id"),
        payee_name=text(record.get("payee_name")),
        party_id=text(record.get("party_id")),
        party_type=text(record.get("party_type")),
        vendor_external_id=text(record.get("vendor_id")),
        vendor_account_number=text(record.get("vendor_account_number")),
        paid=parse_amount(record.get("paid")),
        unpaid=parse_amount(record.get("unpaid")),
        quantity=parse_amount(record.get("quantity")),
        rate=parse_amount(record.get("rate")),
        check_number=text(record.get("check_number")),
        payment_date=parse_date(record.get("payment_date")),
        cash_account=text(record.get("cash_account")),
        bank_account=text(record.get("bank_account")),
        other_payment_type=text(record.get("other_payment_type")),
        work_order_number=text(record.get("work_order")),
        work_order_external_id=text(record.get("work_order_id")),
        work_order_assignee=text(record.get("work_order_assignee")),
        work_order_issue=text(record.get("work_order_issue")),
        service_request_id=text(record.get("service_request_id")),
        purchase_order_number=text(record.get("purchase_order_number")),
        purchase_order_id=text(record.get("purchase_order_id")),
        service_from=parse_date(record.get("service_from")),
        service_to=parse_date(record.get("service_to")),
        approval_status=text(record.get("approval_status")),
        approved_by=text(record.get("approved_by")),
        last_approver=text(record.get("last_approver")),
        next_approvers=text(record.get("next_approvers")),
        days_pending_approval=parse_int(record.get("days_pending_approval")),
        board_approval_status=text(record.get("board_approval_status")),
        cost_center_name=text(record.get("cost_center_name")),
        cost_center_number=text(record.get("cost_center_number")),
        created_by=text(record.get("created_by")),
        txn_created_at=parse_datetime(record.get("txn_created_at")),
        txn_updated_at=parse_datetime(record.get("txn_updated_at")),
    )
