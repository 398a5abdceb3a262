"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import SyncMode, SyncStatus, ConnectionStatus

# ============================================================================
# Health Check Schemas
# ============================================================================

class ConnectionHealth(BaseModel):
    """Latest sync outcome for one AppFolio connection"""
    connection_id: int
    name: str
    status: ConnectionStatus
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    last_run_id: Optional[int] = None
    last_run_status: Optional[SyncStatus] = None
    last_run_started_at: Optional[datetime] = None
    last_run_ended_at: Optional[datetime] = None

    class Config:
        from_attributes = True
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    connections: List[ConnectionHealth] = Field(default_factory=list)
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")

    @model_validator(mode="after")
    def determine_status(self):
        """Unhealthy without a database; degraded when any connection's last run failed"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif any(c.last_run_status == SyncStatus.FAILED.value for c in self.connections):
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "connections": [
                    {
                        "connection_id": 1,
                        "name": "default",
                        "status": "connected",
                        "last_success_at": "2024-01-15T10:00:00Z",
                        "last_run_id": 42,
                        "last_run_status": "completed",
                    }
                ]
            }
        }

# ============================================================================
# Sync Run Schemas
# ============================================================================

class SyncRunResponse(BaseModel):
    """One sync run in the history list"""
    id: int
    connection_id: Optional[int]
    mode: SyncMode
    status: SyncStatus
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    duration_seconds: Optional[int] = None
    resources_synced: int
    errors_count: int
    error_summary: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
        use_enum_values = True


class SyncRunDetailResponse(SyncRunResponse):
    """Sync run with per-resource metrics and error samples"""
    total_created: int = 0
    total_updated: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    resource_metrics: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    resource_errors: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    custom_date_range: Optional[Dict[str, str]] = None


class PaginationMetadata(BaseModel):
    """Pagination metadata"""
    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class SyncRunListResponse(BaseModel):
    runs: List[SyncRunResponse]
    pagination: PaginationMetadata

# ============================================================================
# Alert Schemas
# ============================================================================

class AlertResponse(BaseModel):
    id: int
    connection_id: int
    consecutive_failures: int
    last_alert_sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    failure_details: Optional[List[Dict[str, Any]]] = None

    class Config:
        from_attributes = True


class AlertStatusResponse(BaseModel):
    connection_id: int
    consecutive_failures: int
    is_alerting: bool
    last_alert_sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    failure_details: List[Dict[str, Any]] = Field(default_factory=list)


class AcknowledgeRequest(BaseModel):
    acknowledged_by: str = Field(..., min_length=1, max_length=255)
