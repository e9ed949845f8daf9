"""
Sync Run and Alert Models

SyncRun is the append-only record of one pair sync. SyncAlert holds the
operator-facing messages raised during runs; only its read/resolved flags
change after insert.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class SyncOutcome(str, enum.Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    FAILED = "failed"


class AlertSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(str, enum.Enum):
    NEW_BOOKING = "new_booking"
    MODIFIED_BOOKING = "modified_booking"
    REMOVED_BOOKING = "removed_booking"
    CANCELLATION = "cancellation"       # Confirmed booking vanished from the feed
    FEED_DISAGREES = "feed_disagrees"   # Feed dates differ from a confirmed booking
    DUPLICATE_UID = "duplicate_uid"
    CONFLICT = "conflict"
    SYNC_ERROR = "sync_error"


class SyncRun(Base):
    __tablename__ = "sync_runs"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), nullable=False)
    platform = Column(String(20), nullable=False)
    
    started_at = Column(DateTime, nullable=False)
    finished_at = Column(DateTime, nullable=False)
    outcome = Column(String(20), nullable=False)
    
    # Counts
    new_count = Column(Integer, default=0)
    changed_count = Column(Integer, default=0)
    removed_count = Column(Integer, default=0)
    conflict_count = Column(Integer, default=0)
    events_found = Column(Integer, default=0)
    
    checksum = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)
    
    alerts = relationship("SyncAlert", back_populates="sync_run", order_by="SyncAlert.created_at")
    
    __table_args__ = (
        Index("ix_sync_run_pair", "unit_id", "platform", "finished_at"),
        Index("ix_sync_run_finished", "finished_at"),
    )
    
    @property
    def counts(self) -> dict:
        return {
            "new": self.new_count or 0,
            "changed": self.changed_count or 0,
            "removed": self.removed_count or 0,
            "conflicts": self.conflict_count or 0,
        }
    
    def __repr__(self):
        return f"<SyncRun {self.unit_id}/{self.platform} {self.outcome}>"


class SyncAlert(Base):
    __tablename__ = "sync_alerts"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    sync_run_id = Column(String(36), ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=True)
    
    unit_id = Column(String(36), nullable=True)
    platform = Column(String(20), nullable=True)
    staged_id = Column(String(36), nullable=True)
    
    alert_type = Column(String(30), nullable=False)
    severity = Column(String(20), default=AlertSeverity.INFO.value, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    
    # Lifecycle
    is_read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    is_resolved = Column(Boolean, default=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String(100), nullable=True)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    
    sync_run = relationship("SyncRun", back_populates="alerts")
    
    __table_args__ = (
        Index("ix_sync_alert_created", "created_at"),
        Index("ix_sync_alert_unit", "unit_id", "is_resolved"),
    )
    
    def __repr__(self):
        return f"<SyncAlert {self.alert_type} {self.severity}>"
