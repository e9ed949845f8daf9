"""
Conflict Detector

Flags date overlaps inside one unit:
- pending staged reservation vs active confirmed reservation
- pending staged reservation vs another pending staged reservation
  (any platform, which is how cross-channel double bookings show up)

Intervals are half-open [check_in, check_out): a checkout and a check-in on
the same day do not conflict.

Conflict work on a unit is serialized through lock_unit(). Callers that also
write staged rows take it before touching them, so every writer locks the
unit first and the staged rows second.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Set, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.booking_conflict import BookingConflict, ConflictKind, ConflictSeverity, SEVERITY_RANK
from ..models.calendar_feed import CalendarFeed
from ..models.reservation import Reservation, ACTIVE_RESERVATION_STATUSES
from ..models.staged_reservation import StagedReservation, StageStatus
from ..utils.db_helpers import lock_rows

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and b_start < a_end


def overlap_severity(overlap_nights: int, a_nights: int, b_nights: int) -> str:
    shorter = max(min(a_nights, b_nights), 1)
    ratio = overlap_nights / shorter
    if ratio >= 1:
        return ConflictSeverity.HIGH.value
    if ratio >= 0.5:
        return ConflictSeverity.MEDIUM.value
    return ConflictSeverity.LOW.value


@dataclass
class ConflictRecord:
    unit_id: str
    kind: str
    staged_id: str
    other_id: str
    overlap_start: date
    overlap_end: date
    overlap_nights: int
    severity: str

    @property
    def pair(self) -> Tuple[str, str]:
        """Order-independent identity of the two bookings"""
        return tuple(sorted((self.staged_id, self.other_id)))


class ConflictDetector:

    def __init__(self, db: Session = None):
        self.db = db

    @staticmethod
    def _conflict(unit_id: str, kind: str, staged, other) -> ConflictRecord:
        start = max(staged.check_in_date, other.check_in_date)
        end = min(staged.check_out_date, other.check_out_date)
        nights = (end - start).days
        return ConflictRecord(
            unit_id=unit_id,
            kind=kind,
            staged_id=staged.id,
            other_id=other.id,
            overlap_start=start,
            overlap_end=end,
            overlap_nights=nights,
            severity=overlap_severity(
                nights,
                (staged.check_out_date - staged.check_in_date).days,
                (other.check_out_date - other.check_in_date).days
            )
        )

    def detect(self, unit_id: str, staged: List, confirmed: List) -> List[ConflictRecord]:
        """
        Pairwise overlap check.

        `staged` and `confirmed` hold objects with id, check_in_date and
        check_out_date. Each unordered pair is reported once.
        """
        conflicts: List[ConflictRecord] = []
        seen: Set[Tuple[str, str]] = set()

        ordered_staged = sorted(staged, key=lambda s: s.id)

        for s in ordered_staged:
            for r in confirmed:
                if not intervals_overlap(s.check_in_date, s.check_out_date, r.check_in_date, r.check_out_date):
                    continue
                record = self._conflict(unit_id, ConflictKind.STAGED_VS_CONFIRMED.value, s, r)
                if record.pair not in seen:
                    seen.add(record.pair)
                    conflicts.append(record)

        for i, a in enumerate(ordered_staged):
            for b in ordered_staged[i + 1:]:
                if not intervals_overlap(a.check_in_date, a.check_out_date, b.check_in_date, b.check_out_date):
                    continue
                record = self._conflict(unit_id, ConflictKind.STAGED_VS_STAGED.value, a, b)
                if record.pair not in seen:
                    seen.add(record.pair)
                    conflicts.append(record)

        return conflicts

    # ---------- persistence ----------

    def lock_unit(self, unit_id: str) -> List[CalendarFeed]:
        """
        Lock the unit's calendar_feeds rows (FOR UPDATE on PostgreSQL) until
        the transaction ends.

        Two pairs of the same unit syncing in parallel would otherwise each
        miss the other's uncommitted pending rows. Under read committed, the
        statements after the lock see whatever the previous holder committed.
        Rows are locked in id order. Re-locking within the same transaction
        is a no-op.
        """
        query = self.db.query(CalendarFeed).filter(
            CalendarFeed.unit_id == unit_id
        ).order_by(CalendarFeed.id)
        return lock_rows(self.db, query).all()

    def active_staged(self, unit_id: str) -> List[StagedReservation]:
        return self.db.query(StagedReservation).filter(
            and_(
                StagedReservation.unit_id == unit_id,
                StagedReservation.stage_status == StageStatus.PENDING.value
            )
        ).all()

    def active_confirmed(self, unit_id: str) -> List[Reservation]:
        return self.db.query(Reservation).filter(
            and_(
                Reservation.unit_id == unit_id,
                Reservation.is_deleted == False,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES)
            )
        ).all()

    def refresh_unit(self, unit_id: str) -> Tuple[List[ConflictRecord], List[ConflictRecord]]:
        """
        Recompute and persist conflicts for a unit, and update the conflict
        flag of every staged record of that unit.

        Returns (all current conflicts, conflicts that were not stored before).
        Flushes only.
        """
        self.lock_unit(unit_id)

        previous: Set[Tuple[str, str]] = {
            tuple(sorted((c.staged_id, c.other_staged_id or c.reservation_id)))
            for c in self.db.query(BookingConflict).filter(BookingConflict.unit_id == unit_id).all()
        }

        staged = self.active_staged(unit_id)
        conflicts = self.detect(unit_id, staged, self.active_confirmed(unit_id))

        self.db.query(BookingConflict).filter(
            BookingConflict.unit_id == unit_id
        ).delete(synchronize_session=False)

        worst: Dict[str, str] = {}
        for c in conflicts:
            is_staged_pair = c.kind == ConflictKind.STAGED_VS_STAGED.value
            self.db.add(BookingConflict(
                unit_id=unit_id,
                kind=c.kind,
                staged_id=c.staged_id,
                other_staged_id=c.other_id if is_staged_pair else None,
                reservation_id=None if is_staged_pair else c.other_id,
                overlap_start=c.overlap_start,
                overlap_end=c.overlap_end,
                overlap_nights=c.overlap_nights,
                severity=c.severity,
            ))
            involved = [c.staged_id, c.other_id] if is_staged_pair else [c.staged_id]
            for staged_id in involved:
                if SEVERITY_RANK[c.severity] > SEVERITY_RANK.get(worst.get(staged_id), 0):
                    worst[staged_id] = c.severity

        flagged = self.db.query(StagedReservation).filter(
            and_(
                StagedReservation.unit_id == unit_id,
                StagedReservation.has_conflict == True
            )
        ).all()
        for record in set(flagged) | set(staged):
            severity = worst.get(record.id)
            record.has_conflict = severity is not None
            record.conflict_severity = severity

        self.db.flush()

        new_conflicts = [c for c in conflicts if c.pair not in previous]
        if conflicts:
            logger.info(f"Unit {unit_id}: {len(conflicts)} conflicts ({len(new_conflicts)} new)")
        return conflicts, new_conflicts
