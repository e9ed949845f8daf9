"""
Sync Ledger

Append-only record of pair syncs plus the query surface behind the status
widget (last sync per unit, pending review count, recent alerts).
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..config import settings
from ..models.staged_reservation import StagedReservation, StageStatus
from ..models.sync_run import SyncRun, SyncAlert, SyncOutcome
from .staging_reconciler import AlertDraft

logger = logging.getLogger(__name__)


class SyncLedger:

    def __init__(self, db: Session):
        self.db = db

    def record_run(
        self,
        unit_id: str,
        platform: str,
        outcome: SyncOutcome,
        started_at: datetime,
        finished_at: Optional[datetime] = None,
        counts: Optional[Dict[str, int]] = None,
        alerts: Optional[List[AlertDraft]] = None,
        events_found: int = 0,
        checksum: Optional[str] = None,
        error_message: Optional[str] = None,
        run_id: Optional[str] = None
    ) -> SyncRun:
        """
        Append a SyncRun and its alerts. Flushes only; the caller commits,
        so an updated run lands in the same transaction as its staged writes.

        `run_id` lets the caller pick the row id ahead of time, e.g. to tag
        log lines of the run before it is recorded.
        """
        counts = counts or {}
        run = SyncRun(
            unit_id=unit_id,
            platform=platform,
            outcome=SyncOutcome(outcome).value,
            started_at=started_at,
            finished_at=finished_at or datetime.utcnow(),
            new_count=counts.get("new", 0),
            changed_count=counts.get("changed", 0),
            removed_count=counts.get("removed", 0),
            conflict_count=counts.get("conflicts", 0),
            events_found=events_found,
            checksum=checksum,
            error_message=error_message,
        )
        if run_id:
            run.id = run_id
        self.db.add(run)
        self.db.flush()

        for draft in alerts or []:
            self.db.add(SyncAlert(
                sync_run_id=run.id,
                unit_id=unit_id,
                platform=platform,
                staged_id=draft.staged_id,
                alert_type=draft.alert_type,
                severity=draft.severity,
                title=draft.title,
                message=draft.message,
                created_at=run.finished_at,
            ))
        self.db.flush()
        return run

    # ---------- queries ----------

    def latest_runs(self, unit_id: Optional[str] = None) -> List[SyncRun]:
        """Most recent run of every (unit, platform) pair"""
        latest = self.db.query(
            SyncRun.unit_id,
            SyncRun.platform,
            func.max(SyncRun.finished_at).label("finished_at")
        ).group_by(SyncRun.unit_id, SyncRun.platform)
        if unit_id:
            latest = latest.filter(SyncRun.unit_id == unit_id)
        latest = latest.subquery()

        return self.db.query(SyncRun).join(
            latest,
            and_(
                SyncRun.unit_id == latest.c.unit_id,
                SyncRun.platform == latest.c.platform,
                SyncRun.finished_at == latest.c.finished_at
            )
        ).order_by(SyncRun.unit_id, SyncRun.platform).all()

    def last_sync_by_unit(self) -> Dict[str, datetime]:
        rows = self.db.query(
            SyncRun.unit_id,
            func.max(SyncRun.finished_at)
        ).group_by(SyncRun.unit_id).all()
        return {unit_id: finished_at for unit_id, finished_at in rows}

    def pending_count(self, unit_id: Optional[str] = None) -> int:
        query = self.db.query(func.count(StagedReservation.id)).filter(
            StagedReservation.stage_status == StageStatus.PENDING.value
        )
        if unit_id:
            query = query.filter(StagedReservation.unit_id == unit_id)
        return query.scalar() or 0

    def recent_alerts(
        self,
        limit: Optional[int] = None,
        unit_id: Optional[str] = None,
        include_resolved: bool = False
    ) -> List[SyncAlert]:
        query = self.db.query(SyncAlert)
        if unit_id:
            query = query.filter(SyncAlert.unit_id == unit_id)
        if not include_resolved:
            query = query.filter(SyncAlert.is_resolved == False)
        limit = limit or settings.sync_recent_alerts_limit
        return query.order_by(SyncAlert.created_at.desc()).limit(limit).all()

    def status_summary(self, unit_id: Optional[str] = None) -> Dict:
        """Payload for the dashboard status widget"""
        runs = self.latest_runs(unit_id)

        units: Dict[str, Dict] = {}
        for run in runs:
            entry = units.setdefault(run.unit_id, {
                "unit_id": run.unit_id,
                "last_sync_at": run.finished_at,
                "pending_count": 0,
                "platforms": [],
            })
            entry["last_sync_at"] = max(entry["last_sync_at"], run.finished_at)
            entry["platforms"].append({
                "platform": run.platform,
                "last_sync_at": run.finished_at,
                "outcome": run.outcome,
                "counts": run.counts,
                "error_message": run.error_message,
            })

        pending_rows = self.db.query(
            StagedReservation.unit_id,
            func.count(StagedReservation.id)
        ).filter(
            StagedReservation.stage_status == StageStatus.PENDING.value
        ).group_by(StagedReservation.unit_id)
        if unit_id:
            pending_rows = pending_rows.filter(StagedReservation.unit_id == unit_id)
        for pending_unit, count in pending_rows.all():
            if pending_unit in units:
                units[pending_unit]["pending_count"] = count

        return {
            "last_sync_at": max((u["last_sync_at"] for u in units.values()), default=None),
            "pending_count": self.pending_count(unit_id),
            "units": list(units.values()),
            "alerts": self.recent_alerts(unit_id=unit_id),
        }

    # ---------- alert lifecycle ----------

    def _get_alert(self, alert_id: str) -> Optional[SyncAlert]:
        return self.db.query(SyncAlert).filter(SyncAlert.id == alert_id).first()

    def mark_alert_read(self, alert_id: str) -> Optional[SyncAlert]:
        alert = self._get_alert(alert_id)
        if alert and not alert.is_read:
            alert.is_read = True
            alert.read_at = datetime.utcnow()
            self.db.commit()
        return alert

    def resolve_alert(self, alert_id: str, resolved_by: Optional[str] = None) -> Optional[SyncAlert]:
        alert = self._get_alert(alert_id)
        if alert and not alert.is_resolved:
            alert.is_resolved = True
            alert.resolved_at = datetime.utcnow()
            alert.resolved_by = resolved_by
            if not alert.is_read:
                alert.is_read = True
                alert.read_at = alert.resolved_at
            self.db.commit()
        return alert
