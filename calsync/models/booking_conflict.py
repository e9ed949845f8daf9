"""
Booking Conflict Model

Overlap between a pending staged reservation and either a confirmed ledger
reservation or another pending staged reservation of the same unit.
Recomputed per unit after each reconciliation and review decision.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Integer, Index
from ..database import Base
import enum


class ConflictSeverity(str, enum.Enum):
    LOW = "low"        # Less than half of the shorter stay overlaps
    MEDIUM = "medium"  # At least half of the shorter stay overlaps
    HIGH = "high"      # The shorter stay lies entirely inside the other


SEVERITY_RANK = {
    ConflictSeverity.LOW.value: 1,
    ConflictSeverity.MEDIUM.value: 2,
    ConflictSeverity.HIGH.value: 3,
}


class ConflictKind(str, enum.Enum):
    STAGED_VS_CONFIRMED = "staged_vs_confirmed"
    STAGED_VS_STAGED = "staged_vs_staged"


class BookingConflict(Base):
    __tablename__ = "booking_conflicts"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), nullable=False)
    kind = Column(String(30), nullable=False)
    
    staged_id = Column(String(36), nullable=False)
    # Exactly one of these is set
    other_staged_id = Column(String(36), nullable=True)
    reservation_id = Column(String(36), nullable=True)
    
    overlap_start = Column(Date, nullable=False)
    overlap_end = Column(Date, nullable=False)
    overlap_nights = Column(Integer, nullable=False)
    severity = Column(String(20), nullable=False)
    
    detected_at = Column(DateTime, default=datetime.utcnow)
    
    __table_args__ = (
        Index("ix_booking_conflict_unit", "unit_id"),
        Index("ix_booking_conflict_staged", "staged_id"),
    )
    
    def __repr__(self):
        other = self.other_staged_id or self.reservation_id
        return f"<BookingConflict {self.staged_id} x {other} {self.severity}>"
