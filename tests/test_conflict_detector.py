"""
Tests for booking conflict detection

Tests cover:
- Half-open overlap (same-day turnover is not a conflict)
- Severity by overlap share of the shorter stay
- Symmetry of staged vs staged conflicts
- Persisted conflicts and staged conflict flags
- Per-unit locking of conflict work
"""

from datetime import date
from types import SimpleNamespace
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from calsync.models.booking_conflict import BookingConflict, ConflictKind
from calsync.models.calendar_feed import CalendarFeed
from calsync.models.reservation import Reservation, ReservationStatus
from calsync.models.staged_reservation import StagedReservation, StageStatus
from calsync.services.conflict_detector import (
    ConflictDetector,
    intervals_overlap,
    overlap_severity,
)


def _stay(id, start, end):
    return SimpleNamespace(id=id, check_in_date=start, check_out_date=end)


def _staged(db, uid, start, end, platform="airbnb", status=StageStatus.PENDING.value, unit_id="unit-1"):
    record = StagedReservation(
        unit_id=unit_id,
        platform=platform,
        external_uid=uid,
        check_in_date=start,
        check_out_date=end,
        stage_status=status,
    )
    db.add(record)
    db.flush()
    return record


class TestOverlap:
    
    def test_same_day_turnover_is_not_overlap(self):
        assert not intervals_overlap(date(2025, 9, 17), date(2025, 9, 20), date(2025, 9, 20), date(2025, 9, 22))
    
    def test_one_night_overlap(self):
        assert intervals_overlap(date(2025, 9, 17), date(2025, 9, 20), date(2025, 9, 19), date(2025, 9, 22))
    
    def test_containment(self):
        assert intervals_overlap(date(2025, 9, 17), date(2025, 9, 20), date(2025, 9, 18), date(2025, 9, 19))
    
    def test_severity_thresholds(self):
        assert overlap_severity(1, 3, 1) == "high"
        assert overlap_severity(2, 4, 4) == "medium"
        assert overlap_severity(1, 4, 5) == "low"


class TestDetect:
    
    def test_staged_vs_confirmed(self):
        """Confirmed 18-19, staged 17-20 -> one high severity conflict"""
        staged = [_stay("s1", date(2025, 9, 17), date(2025, 9, 20))]
        confirmed = [_stay("r1", date(2025, 9, 18), date(2025, 9, 19))]
        
        conflicts = ConflictDetector().detect("unit-1", staged, confirmed)
        
        assert len(conflicts) == 1
        c = conflicts[0]
        assert c.kind == ConflictKind.STAGED_VS_CONFIRMED.value
        assert c.staged_id == "s1"
        assert c.other_id == "r1"
        assert (c.overlap_start, c.overlap_end, c.overlap_nights) == (date(2025, 9, 18), date(2025, 9, 19), 1)
        assert c.severity == "high"
    
    def test_staged_pairs_are_symmetric(self):
        """The same overlapping pair is found whatever order the stays come in"""
        a = _stay("a", date(2025, 9, 17), date(2025, 9, 20))
        b = _stay("b", date(2025, 9, 19), date(2025, 9, 23))
        detector = ConflictDetector()
        
        forward = detector.detect("unit-1", [a, b], [])
        backward = detector.detect("unit-1", [b, a], [])
        
        assert [c.pair for c in forward] == [c.pair for c in backward] == [("a", "b")]
        assert forward[0].overlap_nights == backward[0].overlap_nights == 1
    
    def test_no_conflicts_for_back_to_back(self):
        stays = [
            _stay("a", date(2025, 9, 1), date(2025, 9, 5)),
            _stay("b", date(2025, 9, 5), date(2025, 9, 9)),
        ]
        
        assert ConflictDetector().detect("unit-1", stays, []) == []


class TestRefreshUnit:
    
    def test_flags_staged_record_against_confirmed(self, db):
        db.add(Reservation(
            unit_id="unit-1",
            check_in_date=date(2025, 9, 18),
            check_out_date=date(2025, 9, 19),
            status=ReservationStatus.CONFIRMED.value,
        ))
        staged = _staged(db, "new-1", date(2025, 9, 17), date(2025, 9, 20))
        
        conflicts, new_conflicts = ConflictDetector(db).refresh_unit("unit-1")
        db.commit()
        
        assert len(conflicts) == 1
        assert len(new_conflicts) == 1
        db.refresh(staged)
        assert staged.has_conflict is True
        assert staged.conflict_severity == "high"
        stored = db.query(BookingConflict).one()
        assert stored.reservation_id is not None
        assert stored.other_staged_id is None
    
    def test_cancelled_and_deleted_reservations_ignored(self, db):
        db.add(Reservation(
            unit_id="unit-1",
            check_in_date=date(2025, 9, 18),
            check_out_date=date(2025, 9, 19),
            status=ReservationStatus.CANCELLED.value,
        ))
        db.add(Reservation(
            unit_id="unit-1",
            check_in_date=date(2025, 9, 18),
            check_out_date=date(2025, 9, 19),
            is_deleted=True,
        ))
        _staged(db, "new-1", date(2025, 9, 17), date(2025, 9, 20))
        
        conflicts, _ = ConflictDetector(db).refresh_unit("unit-1")
        
        assert conflicts == []
    
    def test_cross_platform_staged_conflict(self, db):
        a = _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20), platform="airbnb")
        b = _staged(db, "vrbo-1", date(2025, 9, 18), date(2025, 9, 21), platform="vrbo")
        
        ConflictDetector(db).refresh_unit("unit-1")
        db.commit()
        
        db.refresh(a)
        db.refresh(b)
        assert a.has_conflict and b.has_conflict
        assert a.conflict_severity == b.conflict_severity == "medium"
    
    def test_only_pending_records_take_part(self, db):
        _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20))
        _staged(db, "vrbo-1", date(2025, 9, 18), date(2025, 9, 21), platform="vrbo",
                status=StageStatus.REJECTED.value)
        
        conflicts, _ = ConflictDetector(db).refresh_unit("unit-1")
        
        assert conflicts == []
    
    def test_flag_cleared_when_conflict_goes_away(self, db):
        a = _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20))
        b = _staged(db, "vrbo-1", date(2025, 9, 18), date(2025, 9, 21), platform="vrbo")
        detector = ConflictDetector(db)
        detector.refresh_unit("unit-1")
        
        b.stage_status = StageStatus.REJECTED.value
        db.flush()
        conflicts, new_conflicts = detector.refresh_unit("unit-1")
        db.commit()
        
        assert conflicts == [] and new_conflicts == []
        db.refresh(a)
        db.refresh(b)
        assert a.has_conflict is False
        assert b.has_conflict is False
        assert db.query(BookingConflict).count() == 0
    
    def test_known_conflict_is_not_new(self, db):
        _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20))
        _staged(db, "vrbo-1", date(2025, 9, 18), date(2025, 9, 21), platform="vrbo")
        detector = ConflictDetector(db)
        
        detector.refresh_unit("unit-1")
        conflicts, new_conflicts = detector.refresh_unit("unit-1")
        
        assert len(conflicts) == 1
        assert new_conflicts == []
    
    def test_other_units_untouched(self, db):
        _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20), unit_id="unit-1")
        _staged(db, "vrbo-1", date(2025, 9, 18), date(2025, 9, 21), platform="vrbo", unit_id="unit-2")
        
        conflicts, _ = ConflictDetector(db).refresh_unit("unit-1")
        
        assert conflicts == []


class TestUnitLock:

    def test_lock_unit_uses_for_update_on_postgres(self):
        session = MagicMock()
        session.bind.dialect.name = 'postgresql'
        ordered = session.query.return_value.filter.return_value.order_by.return_value

        ConflictDetector(session).lock_unit("unit-1")

        session.query.assert_called_once_with(CalendarFeed)
        ordered.with_for_update.assert_called_once_with()
        ordered.with_for_update.return_value.all.assert_called_once_with()

    def test_lock_unit_returns_unit_feeds(self, db):
        db.add(CalendarFeed(unit_id="unit-1", platform="airbnb", feed_url="https://a/1.ics"))
        db.add(CalendarFeed(unit_id="unit-1", platform="vrbo", feed_url="https://v/1.ics"))
        db.add(CalendarFeed(unit_id="unit-2", platform="vrbo", feed_url="https://v/2.ics"))
        db.commit()

        feeds = ConflictDetector(db).lock_unit("unit-1")

        assert sorted(f.platform for f in feeds) == ["airbnb", "vrbo"]

    def test_refresh_locks_unit_before_reading_staged(self, db):
        _staged(db, "air-1", date(2025, 9, 17), date(2025, 9, 20))
        detector = ConflictDetector(db)
        order = []
        lock_unit, active_staged = detector.lock_unit, detector.active_staged
        detector.lock_unit = lambda unit_id: order.append("lock") or lock_unit(unit_id)
        detector.active_staged = lambda unit_id: order.append("read") or active_staged(unit_id)

        detector.refresh_unit("unit-1")

        assert order == ["lock", "read"]
