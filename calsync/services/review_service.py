"""
Review Service

Operator surface over the staging table: list staged reservations with their
conflict flags, confirm or reject them. Confirmation only records the
decision here; creating the ledger reservation is done by the dashboard,
which may pass the new reservation id to link both rows.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..exceptions import InvalidStageTransition, StagedRecordNotFound
from ..models.booking_conflict import BookingConflict
from ..models.staged_reservation import StagedReservation, StageStatus
from ..utils.db_helpers import acquire_row_lock
from ..utils.logging_config import get_logger
from .conflict_detector import ConflictDetector

logger = get_logger(__name__)


# Allowed operator transitions: action -> statuses it may start from
ALLOWED_TRANSITIONS = {
    StageStatus.CONFIRMED: [StageStatus.PENDING.value],
    StageStatus.REJECTED: [StageStatus.PENDING.value, StageStatus.SUPERSEDED.value],
}


class ReviewService:

    def __init__(self, db: Session):
        self.db = db

    def list_staged(
        self,
        unit_id: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        platform: Optional[str] = None,
        conflicts_only: bool = False
    ) -> List[StagedReservation]:
        query = self.db.query(StagedReservation)
        if unit_id:
            query = query.filter(StagedReservation.unit_id == unit_id)
        if statuses:
            query = query.filter(StagedReservation.stage_status.in_(statuses))
        if platform:
            query = query.filter(StagedReservation.platform == platform)
        if conflicts_only:
            query = query.filter(StagedReservation.has_conflict == True)
        return query.order_by(StagedReservation.check_in_date, StagedReservation.external_uid).all()

    def get_staged(self, staged_id: str) -> StagedReservation:
        record = self.db.query(StagedReservation).filter(StagedReservation.id == staged_id).first()
        if record is None:
            raise StagedRecordNotFound(f"Staged reservation {staged_id} not found")
        return record

    def conflicts_for(self, staged_ids: List[str]) -> Dict[str, List[BookingConflict]]:
        """Stored conflicts grouped by each staged record they involve"""
        if not staged_ids:
            return {}
        rows = self.db.query(BookingConflict).filter(
            (BookingConflict.staged_id.in_(staged_ids))
            | (BookingConflict.other_staged_id.in_(staged_ids))
        ).all()
        grouped: Dict[str, List[BookingConflict]] = {}
        for row in rows:
            for staged_id in (row.staged_id, row.other_staged_id):
                if staged_id in staged_ids:
                    grouped.setdefault(staged_id, []).append(row)
        return grouped

    def confirm(
        self,
        staged_id: str,
        reviewed_by: Optional[str] = None,
        reservation_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StagedReservation:
        """
        Mark a pending record confirmed. From here on sync never changes its
        interval. A conflict flag does not block confirmation.
        """
        return self._decide(staged_id, StageStatus.CONFIRMED, reviewed_by, notes, reservation_id)

    def reject(
        self,
        staged_id: str,
        reviewed_by: Optional[str] = None,
        notes: Optional[str] = None
    ) -> StagedReservation:
        return self._decide(staged_id, StageStatus.REJECTED, reviewed_by, notes)

    def _decide(
        self,
        staged_id: str,
        target: StageStatus,
        reviewed_by: Optional[str],
        notes: Optional[str],
        reservation_id: Optional[str] = None
    ) -> StagedReservation:
        # Unit first, then the record: the same order sync takes them in
        unit_id = self.db.query(StagedReservation.unit_id).filter(
            StagedReservation.id == staged_id
        ).scalar()
        if unit_id is None:
            raise StagedRecordNotFound(f"Staged reservation {staged_id} not found")
        detector = ConflictDetector(self.db)
        detector.lock_unit(unit_id)
        record = acquire_row_lock(self.db, StagedReservation, StagedReservation.id == staged_id)
        if record is None:
            raise StagedRecordNotFound(f"Staged reservation {staged_id} not found")

        old_status = record.stage_status
        if old_status not in ALLOWED_TRANSITIONS[target]:
            self.db.rollback()
            raise InvalidStageTransition(
                f"Cannot mark a {old_status} reservation as {target.value}"
            )

        record.stage_status = target.value
        record.reviewed_by = reviewed_by
        record.reviewed_at = datetime.utcnow()
        if notes:
            record.stage_notes = notes
        if reservation_id:
            record.reservation_id = reservation_id
        self.db.flush()

        # The record left the pending set; flags of its unit change with it
        detector.refresh_unit(record.unit_id)
        self.db.commit()
        self.db.refresh(record)

        logger.stage_status_changed(record.id, old_status, record.stage_status)
        return record
