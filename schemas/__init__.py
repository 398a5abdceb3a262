"""
Pydantic schemas for data validation and serialization.

Schemas:
    canonical: Canonical entity rows produced by the normalizer
    api: API endpoint request/response schemas

Usage:
    from schemas.canonical import PropertyRow, BillDetailRow
    from schemas.api import HealthCheckResponse, SyncRunListResponse

Validation:
    Canonical rows reject records that cannot be stored safely, such as
    an empty external id or a missing bill transaction id. Those failures
    surface as record-level errors on the sync run.
"""

__all__ = [
    "PropertyRow",
    "UnitRow",
    "BillDetailRow",
    "HealthCheckResponse",
    "SyncRunResponse",
    "SyncRunListResponse",
    "AlertResponse",
]
