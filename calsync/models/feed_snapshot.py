"""
Feed Snapshot Model

Last accepted fingerprint per (unit, platform). Overwritten whenever the
fingerprint changes and the reconciliation pass commits.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, UniqueConstraint
from ..database import Base


class FeedSnapshot(Base):
    __tablename__ = "feed_snapshots"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unit_id = Column(String(36), nullable=False)
    platform = Column(String(20), nullable=False)
    checksum = Column(String(64), nullable=False)  # SHA256 hex
    events_count = Column(Integer, default=0)
    fetched_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    
    __table_args__ = (
        UniqueConstraint("unit_id", "platform", name="uq_feed_snapshot_pair"),
    )
    
    def __repr__(self):
        return f"<FeedSnapshot {self.unit_id}/{self.platform} {self.checksum[:12]}>"
