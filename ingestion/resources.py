"""
Closed set of resource types and the handler each one maps to.

Every ``ResourceType`` member has exactly one ``ResourceHandler`` in
``HANDLERS``; the table is checked for exhaustiveness at import time.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from core.exceptions import UnknownResourceError
from ingestion.extractors.appfolio_client import AppfolioClient
from ingestion.transformers import normalizer
from models.base import Base
from models.property import Property, Unit
from models.leasing import Person, Lease, LedgerTransaction
from models.vendor import Vendor, WorkOrder
from models.billing import BillDetail


class ResourceType(str, enum.Enum):
    PROPERTIES = "properties"
    UNITS = "units"
    VENDORS = "vendors"
    PEOPLE = "people"
    LEASES = "leases"
    RENT_ROLL = "rent_roll"
    LEDGER_TRANSACTIONS = "ledger_transactions"
    WORK_ORDERS = "work_orders"
    BILL_DETAILS = "bill_details"


# Referenced entities must be persisted before their dependants are processed
PROCESSING_ORDER: Tuple[ResourceType, ...] = (
    ResourceType.PROPERTIES,
    ResourceType.UNITS,
    ResourceType.VENDORS,
    ResourceType.PEOPLE,
    ResourceType.LEASES,
    ResourceType.RENT_ROLL,
    ResourceType.LEDGER_TRANSACTIONS,
    ResourceType.WORK_ORDERS,
    ResourceType.BILL_DETAILS,
)


@dataclass(frozen=True)
class ReferenceSpec:
    """
    One foreign reference on a resource row.

    A required reference that is absent or unresolvable skips the record.
    An optional reference that is absent becomes null; one that is present
    but unresolvable also skips the record.
    """

    model: Type[Base]
    column: str
    source_keys: Tuple[str, ...]
    required: bool = False

    def extract(self, record: Dict[str, Any]) -> Optional[str]:
        return normalizer.external_ref(record, *self.source_keys)


@dataclass(frozen=True)
class ResourceHandler:
    resource_type: ResourceType
    model: Type[Base]
    id_fields: Tuple[str, ...]
    mapper: Callable[[Dict[str, Any], str], BaseModel]
    key_column: str = "external_id"
    report: Optional[Callable[..., Any]] = None
    uses_date_range: bool = False
    numeric_key: bool = False
    references: Tuple[ReferenceSpec, ...] = field(default_factory=tuple)

    @property
    def fetchable(self) -> bool:
        return self.report is not None

    def extract_external_id(self, record: Dict[str, Any]) -> Optional[str]:
        """Deterministic external id, or None when the record has none usable."""
        raw = normalizer.first_value(record, *self.id_fields)
        if self.numeric_key:
            txn_id = normalizer.parse_txn_id(raw)
            return str(txn_id) if txn_id is not None else None
        if raw is None:
            return None
        value = str(raw).strip()
        return value or None

    def key_value(self, external_id: str) -> Any:
        return int(external_id) if self.numeric_key else external_id


HANDLERS: Dict[ResourceType, ResourceHandler] = {
    ResourceType.PROPERTIES: ResourceHandler(
        resource_type=ResourceType.PROPERTIES,
        model=Property,
        id_fields=("property_id", "id"),
        mapper=normalizer.map_property,
        report=AppfolioClient.get_property_directory,
    ),
    ResourceType.UNITS: ResourceHandler(
        resource_type=ResourceType.UNITS,
        model=Unit,
        id_fields=("unit_id", "id"),
        mapper=normalizer.map_unit,
        report=AppfolioClient.get_unit_directory,
        references=(
            ReferenceSpec(Property, "property_id", ("property_id", "property.id"), required=True),
        ),
    ),
    ResourceType.VENDORS: ResourceHandler(
        resource_type=ResourceType.VENDORS,
        model=Vendor,
        id_fields=("vendor_id", "id"),
        mapper=normalizer.map_vendor,
        report=AppfolioClient.get_vendor_directory,
    ),
    ResourceType.PEOPLE: ResourceHandler(
        resource_type=ResourceType.PEOPLE,
        model=Person,
        id_fields=("id", "person_id"),
        mapper=normalizer.map_person,
    ),
    ResourceType.LEASES: ResourceHandler(
        resource_type=ResourceType.LEASES,
        model=Lease,
        id_fields=("id", "lease_id"),
        mapper=normalizer.map_lease,
        references=(
            ReferenceSpec(Unit, "unit_id", ("unit_id", "unit.id"), required=True),
            ReferenceSpec(Person, "person_id", ("tenant_id", "person_id", "resident_id")),
        ),
    ),
    ResourceType.RENT_ROLL: ResourceHandler(
        resource_type=ResourceType.RENT_ROLL,
        model=Lease,
        id_fields=("occupancy_id",),
        mapper=normalizer.map_rent_roll,
        report=AppfolioClient.get_rent_roll,
        references=(
            ReferenceSpec(Unit, "unit_id", ("unit_id",), required=True),
        ),
    ),
    ResourceType.LEDGER_TRANSACTIONS: ResourceHandler(
        resource_type=ResourceType.LEDGER_TRANSACTIONS,
        model=LedgerTransaction,
        id_fields=("id", "transaction_id"),
        mapper=normalizer.map_ledger_transaction,
        references=(
            ReferenceSpec(Property, "property_id", ("property_id", "property.id")),
            ReferenceSpec(Unit, "unit_id", ("unit_id", "unit.id")),
        ),
    ),
    ResourceType.WORK_ORDERS: ResourceHandler(
        resource_type=ResourceType.WORK_ORDERS,
        model=WorkOrder,
        id_fields=("work_order_id", "id"),
        mapper=normalizer.map_work_order,
        report=AppfolioClient.get_work_order_report,
        uses_date_range=True,
        references=(
            ReferenceSpec(Property, "property_id", ("property_id",), required=True),
            ReferenceSpec(Unit, "unit_id", ("unit_id",)),
            ReferenceSpec(Vendor, "vendor_id", ("vendor_id",)),
        ),
    ),
    ResourceType.BILL_DETAILS: ResourceHandler(
        resource_type=ResourceType.BILL_DETAILS,
        model=BillDetail,
        id_fields=("txn_id",),
        mapper=normalizer.map_bill_detail,
        key_column="txn_id",
        report=AppfolioClient.get_bill_detail,
        uses_date_range=True,
        numeric_key=True,
        references=(
            ReferenceSpec(Property, "property_id", ("property_id",)),
            ReferenceSpec(Unit, "unit_id", ("unit_id",)),
        ),
    ),
}

_missing = set(ResourceType) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"Resource types without a handler: {sorted(r.value for r in _missing)}")


def parse_resource_type(value: Any) -> ResourceType:
    if isinstance(value, ResourceType):
        return value
    try:
        return ResourceType(str(value))
    except ValueError:
        raise UnknownResourceError(
            f"Unknown resource type: {value}",
            context={"known": [r.value for r in ResourceType]}
        )


def get_handler(resource_type: Any) -> ResourceHandler:
    return HANDLERS[parse_resource_type(resource_type)]


def ordered(resource_types: List[Any]) -> List[ResourceType]:
    """Requested resource types, deduplicated and sorted into processing order."""
    requested = {parse_resource_type(r) for r in resource_types}
    return [r for r in PROCESSING_ORDER if r in requested]
