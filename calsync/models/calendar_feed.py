"""
Calendar Feed Model

Registry of (unit, platform, feed URL) pairs to synchronize. Maintained by the
dashboard; the sync engine only reads it.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Index, UniqueConstraint
from ..database import Base
import enum


class Platform(str, enum.Enum):
    """Booking channel that publishes a feed"""
    AIRBNB = "airbnb"
    VRBO = "vrbo"
    DIRECT = "direct"  # Manually entered bookings exported as iCal


class CalendarFeed(Base):
    __tablename__ = "calendar_feeds"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), nullable=False)
    platform = Column(String(20), nullable=False)
    feed_url = Column(String(1000), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    __table_args__ = (
        UniqueConstraint("unit_id", "platform", name="uq_calendar_feed_pair"),
        Index("ix_calendar_feed_active", "is_active"),
    )
    
    def __repr__(self):
        return f"<CalendarFeed {self.unit_id}/{self.platform} active={self.is_active}>"
