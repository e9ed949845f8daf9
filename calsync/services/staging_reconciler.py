"""
Staging Reconciler

Merges freshly parsed reservations of one (unit, platform) pair into the
staged_reservations table.

Set-based diff keyed by external uid:
- uid only in the feed            -> insert PENDING                  (new)
- uid in both, PENDING/SUPERSEDED -> update interval, back to PENDING (changed,
                                     when the dates differ or it was superseded)
- uid in both, CONFIRMED/REJECTED -> interval left as the operator approved it
- uid only in staging, PENDING    -> SUPERSEDED + warning alert      (removed)

Operator decisions are never overwritten. All writes go through the caller's
session and are only flushed; the orchestrator commits the whole pass at once.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.staged_reservation import StagedReservation, StageStatus, SYNC_MUTABLE_STATUSES
from ..models.sync_run import AlertSeverity, AlertType
from ..utils.db_helpers import lock_rows
from .ical_parser import BookingInterval

logger = logging.getLogger(__name__)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


@dataclass
class AlertDraft:
    """Alert produced during a run, persisted by the SyncLedger"""
    alert_type: str
    severity: str
    title: str
    message: str
    staged_id: Optional[str] = None


@dataclass
class ReconcileResult:
    new: int = 0
    changed: int = 0
    removed: int = 0
    alerts: List[AlertDraft] = field(default_factory=list)
    records: List[StagedReservation] = field(default_factory=list)

    @property
    def has_writes(self) -> bool:
        return bool(self.new or self.changed or self.removed)


class StagingReconciler:

    def __init__(self, db: Session):
        self.db = db

    def load_existing(self, unit_id: str, platform: str) -> List[StagedReservation]:
        """Staged rows of the pair, row-locked on PostgreSQL for the transaction."""
        query = self.db.query(StagedReservation).filter(
            and_(
                StagedReservation.unit_id == unit_id,
                StagedReservation.platform == platform
            )
        )
        return lock_rows(self.db, query).all()

    def reconcile(
        self,
        unit_id: str,
        platform: str,
        intervals: List[BookingInterval],
        existing: Optional[List[StagedReservation]] = None,
        now: Optional[datetime] = None
    ) -> ReconcileResult:
        now = now or datetime.utcnow()
        if existing is None:
            existing = self.load_existing(unit_id, platform)

        result = ReconcileResult()
        incoming = self._dedupe(intervals, result)
        by_uid: Dict[str, StagedReservation] = {r.external_uid: r for r in existing}

        new_records = []
        changed_records = []

        for uid, interval in incoming.items():
            record = by_uid.get(uid)

            if record is None:
                record = self._insert(unit_id, platform, interval, now)
                new_records.append(record)
                result.new += 1
                continue

            status = record.stage_status
            if status in SYNC_MUTABLE_STATUSES:
                dates_differ = (
                    record.check_in_date != interval.check_in
                    or record.check_out_date != interval.check_out
                )
                revived = status == StageStatus.SUPERSEDED.value
                self._apply(record, interval, now)
                if dates_differ or revived:
                    changed_records.append(record)
                    result.changed += 1
            elif status == StageStatus.CONFIRMED.value:
                self._check_confirmed(record, interval, now, result)

        for uid, record in by_uid.items():
            if uid in incoming:
                continue
            if record.stage_status == StageStatus.PENDING.value:
                record.stage_status = StageStatus.SUPERSEDED.value
                record.disappeared_at = now
                result.removed += 1
                result.alerts.append(AlertDraft(
                    alert_type=AlertType.REMOVED_BOOKING.value,
                    severity=AlertSeverity.WARNING.value,
                    title="Booking no longer present in source feed",
                    message=(
                        f"Pending {platform} booking {record.check_in_date.isoformat()} → "
                        f"{record.check_out_date.isoformat()} disappeared from the feed; "
                        f"it may have been cancelled."
                    ),
                    staged_id=record.id
                ))
            elif record.stage_status == StageStatus.CONFIRMED.value and record.disappeared_at is None:
                record.disappeared_at = now
                result.alerts.append(AlertDraft(
                    alert_type=AlertType.CANCELLATION.value,
                    severity=AlertSeverity.CRITICAL.value,
                    title=f"Confirmed booking missing from {platform} feed",
                    message=(
                        f"Confirmed booking {record.check_in_date.isoformat()} → "
                        f"{record.check_out_date.isoformat()} is no longer published by {platform}. "
                        f"Check whether it was cancelled and update the reservation."
                    ),
                    staged_id=record.id
                ))

        self.db.flush()

        if new_records:
            result.alerts.append(AlertDraft(
                alert_type=AlertType.NEW_BOOKING.value,
                severity=AlertSeverity.INFO.value,
                title=f"{_plural(len(new_records), 'new booking')} from {platform}",
                message="New bookings detected in the calendar feed. Review and confirm them.",
                staged_id=new_records[0].id if len(new_records) == 1 else None
            ))
        if changed_records:
            result.alerts.append(AlertDraft(
                alert_type=AlertType.MODIFIED_BOOKING.value,
                severity=AlertSeverity.WARNING.value,
                title=f"{_plural(len(changed_records), 'booking')} modified on {platform}",
                message="Pending bookings changed dates in the calendar feed. Please review the changes.",
                staged_id=changed_records[0].id if len(changed_records) == 1 else None
            ))

        result.records = list(by_uid.values()) + new_records
        logger.info(
            f"Reconciled {unit_id}/{platform}: {result.new} new, "
            f"{result.changed} changed, {result.removed} removed"
        )
        return result

    def _dedupe(self, intervals: List[BookingInterval], result: ReconcileResult) -> Dict[str, BookingInterval]:
        """Reservations by uid; a repeated uid keeps its last occurrence."""
        incoming: Dict[str, BookingInterval] = {}
        duplicates = set()
        for interval in intervals:
            if not interval.is_reservation:
                continue
            if interval.external_uid in incoming:
                duplicates.add(interval.external_uid)
            incoming[interval.external_uid] = interval

        for uid in sorted(duplicates):
            kept = incoming[uid]
            result.alerts.append(AlertDraft(
                alert_type=AlertType.DUPLICATE_UID.value,
                severity=AlertSeverity.WARNING.value,
                title="Duplicate event in calendar feed",
                message=(
                    f"UID {uid} appears more than once; using the last occurrence "
                    f"({kept.check_in.isoformat()} → {kept.check_out.isoformat()})."
                )
            ))
        return incoming

    def _insert(self, unit_id: str, platform: str, interval: BookingInterval, now: datetime) -> StagedReservation:
        record = StagedReservation(
            unit_id=unit_id,
            platform=platform,
            external_uid=interval.external_uid,
            stage_status=StageStatus.PENDING.value,
            has_conflict=False,
            first_seen_at=now,
        )
        self._apply(record, interval, now)
        self.db.add(record)
        return record

    @staticmethod
    def _apply(record: StagedReservation, interval: BookingInterval, now: datetime):
        record.check_in_date = interval.check_in
        record.check_out_date = interval.check_out
        record.feed_check_in_date = interval.check_in
        record.feed_check_out_date = interval.check_out
        record.guest_label = interval.guest_label
        record.phone_last4 = interval.phone_last4
        record.summary = interval.summary
        record.description = interval.description
        record.reservation_url = interval.reservation_url
        record.platform_reference = interval.platform_reference
        record.stage_status = StageStatus.PENDING.value
        record.last_seen_at = now
        record.disappeared_at = None

    @staticmethod
    def _check_confirmed(record: StagedReservation, interval: BookingInterval, now: datetime, result: ReconcileResult):
        record.last_seen_at = now
        record.disappeared_at = None

        published = (interval.check_in, interval.check_out)
        already_reported = (record.feed_check_in_date, record.feed_check_out_date) == published
        record.feed_check_in_date, record.feed_check_out_date = published

        if already_reported:
            return
        if record.check_in_date != interval.check_in or record.check_out_date != interval.check_out:
            result.alerts.append(AlertDraft(
                alert_type=AlertType.FEED_DISAGREES.value,
                severity=AlertSeverity.INFO.value,
                title="Feed dates differ from confirmed booking",
                message=(
                    f"{record.platform} now publishes {interval.check_in.isoformat()} → "
                    f"{interval.check_out.isoformat()} for a booking confirmed as "
                    f"{record.check_in_date.isoformat()} → {record.check_out_date.isoformat()}. "
                    f"The confirmed dates were kept."
                ),
                staged_id=record.id
            ))
