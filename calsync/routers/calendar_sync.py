"""
Calendar Sync Router

Status widget, operator review queue and manual sync trigger.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..exceptions import InvalidStageTransition, StagedRecordNotFound
from ..models.staged_reservation import StageStatus
from ..schemas.calendar_sync import (
    ConfirmRequest,
    ConflictResponse,
    PairResult,
    RejectRequest,
    ResolveAlertRequest,
    RunRequest,
    RunResponse,
    StagedReservationList,
    StagedReservationResponse,
    SyncAlertResponse,
    SyncStatusResponse,
)
from ..services.calendar_sync import run_calendar_sync_tick
from ..services.review_service import ReviewService
from ..services.sync_ledger import SyncLedger
from ..services.sync_scheduler import get_scheduler_status
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/calendar-sync", tags=["Calendar Sync"])


def _staged_response(record, conflicts) -> StagedReservationResponse:
    response = StagedReservationResponse.model_validate(record)
    response.conflicts = [ConflictResponse.model_validate(c) for c in conflicts]
    return response


# ==================
# Status
# ==================

@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    unit_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Sync status widget: last sync per unit and platform, pending review
    count and recent unresolved alerts.
    """
    summary = SyncLedger(db).status_summary(unit_id)
    summary["scheduler"] = get_scheduler_status()
    return summary


# ==================
# Review queue
# ==================

@router.get("/staged", response_model=StagedReservationList)
async def list_staged_reservations(
    unit_id: Optional[str] = None,
    platform: Optional[str] = None,
    status: Optional[List[str]] = Query(None, description="Filter by stage status"),
    conflicts_only: bool = False,
    db: Session = Depends(get_db)
):
    """Staged reservations, pending ones by default"""
    statuses = status or [StageStatus.PENDING.value]
    service = ReviewService(db)
    records = service.list_staged(
        unit_id=unit_id,
        statuses=statuses,
        platform=platform,
        conflicts_only=conflicts_only
    )
    conflicts = service.conflicts_for([r.id for r in records])
    return {
        "total": len(records),
        "items": [_staged_response(r, conflicts.get(r.id, [])) for r in records],
    }


@router.get("/staged/{staged_id}", response_model=StagedReservationResponse)
async def get_staged_reservation(staged_id: str, db: Session = Depends(get_db)):
    service = ReviewService(db)
    try:
        record = service.get_staged(staged_id)
    except StagedRecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _staged_response(record, service.conflicts_for([record.id]).get(record.id, []))


@router.post("/staged/{staged_id}/confirm", response_model=StagedReservationResponse)
async def confirm_staged_reservation(
    staged_id: str,
    payload: Optional[ConfirmRequest] = None,
    db: Session = Depends(get_db)
):
    payload = payload or ConfirmRequest()
    service = ReviewService(db)
    try:
        record = service.confirm(
            staged_id,
            reviewed_by=payload.reviewed_by,
            reservation_id=payload.reservation_id,
            notes=payload.notes
        )
    except StagedRecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStageTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _staged_response(record, service.conflicts_for([record.id]).get(record.id, []))


@router.post("/staged/{staged_id}/reject", response_model=StagedReservationResponse)
async def reject_staged_reservation(
    staged_id: str,
    payload: Optional[RejectRequest] = None,
    db: Session = Depends(get_db)
):
    payload = payload or RejectRequest()
    service = ReviewService(db)
    try:
        record = service.reject(staged_id, reviewed_by=payload.reviewed_by, notes=payload.notes)
    except StagedRecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStageTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _staged_response(record, [])


# ==================
# Alerts
# ==================

@router.get("/alerts", response_model=List[SyncAlertResponse])
async def list_sync_alerts(
    unit_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    include_resolved: bool = False,
    db: Session = Depends(get_db)
):
    return SyncLedger(db).recent_alerts(limit=limit, unit_id=unit_id, include_resolved=include_resolved)


@router.post("/alerts/{alert_id}/read", response_model=SyncAlertResponse)
async def mark_sync_alert_read(alert_id: str, db: Session = Depends(get_db)):
    alert = SyncLedger(db).mark_alert_read(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


@router.post("/alerts/{alert_id}/resolve", response_model=SyncAlertResponse)
async def resolve_sync_alert(
    alert_id: str,
    payload: Optional[ResolveAlertRequest] = None,
    db: Session = Depends(get_db)
):
    resolved_by = payload.resolved_by if payload else None
    alert = SyncLedger(db).resolve_alert(alert_id, resolved_by=resolved_by)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert


# ==================
# Manual run
# ==================

@router.post("/run", response_model=RunResponse)
def run_sync_now(payload: Optional[RunRequest] = None):
    """
    Run one sync tick now and wait for it.

    Pairs already being synced by the scheduler are reported as skipped.
    """
    unit_id = payload.unit_id if payload else None
    logger.info(f"Manual calendar sync requested (unit={unit_id or 'all'})")
    results = run_calendar_sync_tick(unit_id=unit_id)
    return RunResponse(
        success=True,
        pairs=len(results),
        results=[PairResult.model_validate(r) for r in results]
    )
