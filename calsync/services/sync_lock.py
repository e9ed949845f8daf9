"""
Per-pair sync locks

At most one sync may be in flight for a (unit, platform) pair. A pair whose
previous run is still going is skipped for the current tick, never queued.

- PairLockRegistry: in-process, one non-blocking threading.Lock per pair
- DatabasePairLock: advisory row in sync_locks, for several orchestrator
  instances sharing a database; rows expire so a crashed worker cannot hold
  a pair forever
"""

import logging
import os
import socket
import threading
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.sync_lock import SyncLock
from ..utils.db_helpers import acquire_row_lock

logger = logging.getLogger(__name__)


def pair_key(unit_id: str, platform: str) -> str:
    return f"{unit_id}:{platform}"


class PairLockRegistry:
    """In-process lock registry keyed by (unit, platform)"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def try_acquire(self, unit_id: str, platform: str) -> bool:
        return self._lock_for(pair_key(unit_id, platform)).acquire(blocking=False)

    def release(self, unit_id: str, platform: str):
        lock = self._lock_for(pair_key(unit_id, platform))
        if lock.locked():
            lock.release()

    def is_locked(self, unit_id: str, platform: str) -> bool:
        return self._lock_for(pair_key(unit_id, platform)).locked()


class DatabasePairLock:
    """
    Advisory lock rows in the sync_locks table.

    Each acquire/release runs in its own short session so the lock is
    visible to other instances immediately.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_seconds: Optional[int] = None,
        owner: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds or settings.sync_lock_ttl_seconds)
        self.owner = owner or f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"

    def try_acquire(self, unit_id: str, platform: str) -> bool:
        key = pair_key(unit_id, platform)
        now = datetime.utcnow()
        db = self.session_factory()
        try:
            existing = acquire_row_lock(db, SyncLock, SyncLock.lock_key == key, nowait=True)
            if existing is not None:
                if not existing.is_expired(now):
                    db.rollback()
                    return False
                logger.warning(f"Taking over expired sync lock {key} held by {existing.locked_by}")
                existing.locked_by = self.owner
                existing.locked_at = now
                existing.expires_at = now + self.ttl
            else:
                db.add(SyncLock(
                    lock_key=key,
                    locked_by=self.owner,
                    locked_at=now,
                    expires_at=now + self.ttl
                ))
            db.commit()
            return True
        except IntegrityError:
            # Another instance inserted the row first
            db.rollback()
            return False
        except OperationalError:
            # Row locked by another instance that is acquiring or releasing
            db.rollback()
            return False
        finally:
            db.close()

    def release(self, unit_id: str, platform: str):
        key = pair_key(unit_id, platform)
        db = self.session_factory()
        try:
            db.query(SyncLock).filter(
                SyncLock.lock_key == key,
                SyncLock.locked_by == self.owner
            ).delete(synchronize_session=False)
            db.commit()
        finally:
            db.close()

    def is_locked(self, unit_id: str, platform: str) -> bool:
        db = self.session_factory()
        try:
            lock = db.query(SyncLock).filter(SyncLock.lock_key == pair_key(unit_id, platform)).first()
            return lock is not None and not lock.is_expired()
        finally:
            db.close()


def build_lock(session_factory: Callable[[], Session], backend: Optional[str] = None):
    backend = backend or settings.sync_lock_backend
    if backend == "database":
        return DatabasePairLock(session_factory)
    return PairLockRegistry()
