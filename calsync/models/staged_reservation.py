"""
Staged Reservation Model

Pending-review holding area for bookings parsed from platform feeds.

Identity is (unit_id, platform, external_uid). Automated sync may insert rows,
update the interval of PENDING/SUPERSEDED rows and supersede PENDING rows.
CONFIRMED and REJECTED are operator decisions and are never rewritten by sync.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Boolean, Text, Index, UniqueConstraint
from ..database import Base
import enum


class StageStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"  # Disappeared from the feed while still pending


# Statuses the reconciler may rewrite
SYNC_MUTABLE_STATUSES = [StageStatus.PENDING.value, StageStatus.SUPERSEDED.value]


class StagedReservation(Base):
    __tablename__ = "staged_reservations"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    
    # Identity
    unit_id = Column(String(36), nullable=False)
    platform = Column(String(20), nullable=False)
    external_uid = Column(String(255), nullable=False)
    
    # Interval (all-day semantics, check_out exclusive)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    
    # Dates the feed last published. Differs from the interval only once
    # the record is confirmed and the platform moves the stay.
    feed_check_in_date = Column(Date, nullable=True)
    feed_check_out_date = Column(Date, nullable=True)
    
    # Parsed from the feed
    guest_label = Column(String(255), nullable=True)
    phone_last4 = Column(String(4), nullable=True)
    summary = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    reservation_url = Column(String(1000), nullable=True)
    platform_reference = Column(String(100), nullable=True)
    
    # Workflow
    stage_status = Column(String(20), default=StageStatus.PENDING.value, nullable=False)
    stage_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(100), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reservation_id = Column(String(36), nullable=True)  # Ledger row created on confirmation
    
    # Conflict flag surfaced to the operator
    has_conflict = Column(Boolean, default=False, nullable=False)
    conflict_severity = Column(String(20), nullable=True)
    
    # Sightings
    first_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    disappeared_at = Column(DateTime, nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        UniqueConstraint("unit_id", "platform", "external_uid", name="uq_staged_reservation_identity"),
        Index("ix_staged_reservation_status", "unit_id", "stage_status"),
    )
    
    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days
    
    def __repr__(self):
        return f"<StagedReservation {self.platform}:{self.external_uid} {self.stage_status}>"
