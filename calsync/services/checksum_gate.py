"""
Checksum Gate

Fingerprints a parsed feed so that unchanged feeds skip reconciliation.

The fingerprint covers (uid, check-in, check-out, is-reservation) of every
event, sorted, so the order in which a platform emits its events does not
matter. A blocked slot turning into a booking under the same uid and dates
changes the fingerprint.
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..models.feed_snapshot import FeedSnapshot
from .ical_parser import BookingInterval


@dataclass
class GateDecision:
    changed: bool
    fingerprint: str
    previous_fingerprint: Optional[str] = None


def compute_fingerprint(intervals: List[BookingInterval]) -> str:
    canonical = sorted(
        (i.external_uid, i.check_in.isoformat(), i.check_out.isoformat(), i.is_reservation)
        for i in intervals
    )
    payload = json.dumps(canonical, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ChecksumGate:
    
    def __init__(self, db: Session):
        self.db = db
    
    def get_snapshot(self, unit_id: str, platform: str) -> Optional[FeedSnapshot]:
        return self.db.query(FeedSnapshot).filter(
            and_(
                FeedSnapshot.unit_id == unit_id,
                FeedSnapshot.platform == platform
            )
        ).first()
    
    @staticmethod
    def evaluate(intervals: List[BookingInterval], snapshot: Optional[FeedSnapshot]) -> GateDecision:
        fingerprint = compute_fingerprint(intervals)
        previous = snapshot.checksum if snapshot else None
        return GateDecision(
            changed=previous != fingerprint,
            fingerprint=fingerprint,
            previous_fingerprint=previous
        )
    
    def store_snapshot(
        self,
        unit_id: str,
        platform: str,
        fingerprint: str,
        events_count: int,
        fetched_at: Optional[datetime] = None
    ) -> FeedSnapshot:
        """
        Upsert the pair's snapshot. Flushes only; the caller commits together
        with the reconciliation writes.
        """
        snapshot = self.get_snapshot(unit_id, platform)
        if snapshot is None:
            snapshot = FeedSnapshot(unit_id=unit_id, platform=platform)
            self.db.add(snapshot)
        
        snapshot.checksum = fingerprint
        snapshot.events_count = events_count
        snapshot.fetched_at = fetched_at or datetime.utcnow()
        self.db.flush()
        return snapshot
