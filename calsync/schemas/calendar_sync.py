"""
Calendar Sync Schemas

Pydantic models for the calendar sync status and review API.
"""

from datetime import date, datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field


# ==================
# Staged Reservations
# ==================

class ConflictResponse(BaseModel):
    """Stored overlap involving a staged reservation"""
    id: str
    kind: str
    staged_id: str
    other_staged_id: Optional[str] = None
    reservation_id: Optional[str] = None
    overlap_start: date
    overlap_end: date
    overlap_nights: int
    severity: str
    detected_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class StagedReservationResponse(BaseModel):
    id: str
    unit_id: str
    platform: str
    external_uid: str
    check_in_date: date
    check_out_date: date
    nights: int
    guest_label: Optional[str] = None
    phone_last4: Optional[str] = None
    summary: Optional[str] = None
    reservation_url: Optional[str] = None
    platform_reference: Optional[str] = None
    stage_status: str
    stage_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reservation_id: Optional[str] = None
    has_conflict: bool
    conflict_severity: Optional[str] = None
    first_seen_at: datetime
    last_seen_at: datetime
    disappeared_at: Optional[datetime] = None
    conflicts: List[ConflictResponse] = []
    
    class Config:
        from_attributes = True


class StagedReservationList(BaseModel):
    total: int
    items: List[StagedReservationResponse]


class ConfirmRequest(BaseModel):
    """Operator confirmation of a pending staged reservation"""
    reviewed_by: Optional[str] = None
    reservation_id: Optional[str] = Field(None, description="Ledger reservation created for this booking")
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


# ==================
# Alerts
# ==================

class SyncAlertResponse(BaseModel):
    id: str
    sync_run_id: Optional[str] = None
    unit_id: Optional[str] = None
    platform: Optional[str] = None
    staged_id: Optional[str] = None
    alert_type: str
    severity: str
    title: str
    message: Optional[str] = None
    is_read: bool
    is_resolved: bool
    resolved_by: Optional[str] = None
    created_at: Optional[datetime] = None
    
    class Config:
        from_attributes = True


class ResolveAlertRequest(BaseModel):
    resolved_by: Optional[str] = None


# ==================
# Status
# ==================

class PlatformStatus(BaseModel):
    platform: str
    last_sync_at: Optional[datetime] = None
    outcome: str
    counts: Dict[str, int]
    error_message: Optional[str] = None


class UnitStatus(BaseModel):
    unit_id: str
    last_sync_at: Optional[datetime] = None
    pending_count: int
    platforms: List[PlatformStatus]


class SyncStatusResponse(BaseModel):
    """Payload of the dashboard sync status widget"""
    last_sync_at: Optional[datetime] = None
    pending_count: int
    units: List[UnitStatus]
    alerts: List[SyncAlertResponse]
    scheduler: Optional[Dict] = None


# ==================
# Manual run
# ==================

class PairResult(BaseModel):
    unit_id: str
    platform: str
    outcome: Optional[str] = None
    skipped: bool = False
    counts: Dict[str, int] = {}
    sync_run_id: Optional[str] = None
    error: Optional[str] = None
    
    class Config:
        from_attributes = True


class RunRequest(BaseModel):
    unit_id: Optional[str] = Field(None, description="Restrict the run to one unit")


class RunResponse(BaseModel):
    success: bool
    pairs: int
    results: List[PairResult]
