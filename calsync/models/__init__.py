# Models package
from .calendar_feed import CalendarFeed, Platform
from .reservation import Reservation, ReservationStatus, ACTIVE_RESERVATION_STATUSES
from .staged_reservation import (
    StagedReservation,
    StageStatus,
    SYNC_MUTABLE_STATUSES
)
from .feed_snapshot import FeedSnapshot
from .booking_conflict import BookingConflict, ConflictSeverity, ConflictKind, SEVERITY_RANK
from .sync_run import SyncRun, SyncAlert, SyncOutcome, AlertSeverity, AlertType
from .sync_lock import SyncLock

__all__ = [
    "CalendarFeed", "Platform",
    "Reservation", "ReservationStatus", "ACTIVE_RESERVATION_STATUSES",
    "StagedReservation", "StageStatus", "SYNC_MUTABLE_STATUSES",
    "FeedSnapshot",
    "BookingConflict", "ConflictSeverity", "ConflictKind", "SEVERITY_RANK",
    "SyncRun", "SyncAlert", "SyncOutcome", "AlertSeverity", "AlertType",
    "SyncLock",
]
