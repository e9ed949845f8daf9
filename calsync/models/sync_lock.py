"""
Sync Lock Model

Advisory lock row held while a (unit, platform) pair is being synchronized.
Used when several orchestrator instances share one database.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime
from ..database import Base


class SyncLock(Base):
    __tablename__ = "sync_locks"
    
    # "<unit_id>:<platform>"
    lock_key = Column(String(100), primary_key=True)
    locked_by = Column(String(100), nullable=False)  # Worker identifier
    locked_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    
    def is_expired(self, now: datetime = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at
    
    def __repr__(self):
        return f"<SyncLock {self.lock_key} by {self.locked_by}>"
