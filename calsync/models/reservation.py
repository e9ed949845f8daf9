"""
Reservation Model

The confirmed reservation ledger. Rows are written by the dashboard when an
operator promotes a staged reservation; the sync engine reads them for
conflict detection and never writes to this table.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime, Boolean, Text, Index
from ..database import Base
import enum


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


# Statuses that still occupy the unit
ACTIVE_RESERVATION_STATUSES = [
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.CHECKED_IN.value,
    ReservationStatus.CHECKED_OUT.value,
]


class Reservation(Base):
    __tablename__ = "reservations"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), nullable=False)
    platform = Column(String(20), nullable=True)
    platform_reservation_id = Column(String(255), nullable=True)
    guest_name = Column(String(100), nullable=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    status = Column(String(30), default=ReservationStatus.CONFIRMED.value)
    notes = Column(Text, nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    # Soft Delete
    is_deleted = Column(Boolean, default=False, index=True)
    
    __table_args__ = (
        Index("ix_reservation_unit_dates", "unit_id", "check_in_date", "check_out_date"),
    )
    
    def __repr__(self):
        return f"<Reservation {self.unit_id} {self.check_in_date} -> {self.check_out_date}>"
