"""
Tests for per-pair sync locks

Tests cover:
- Non-blocking in-process registry
- Database advisory lock rows shared by several owners
- Expired lock takeover
- PostgreSQL row locking helper
"""

import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from concurrent.futures import ThreadPoolExecutor

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from calsync.models.sync_lock import SyncLock
from calsync.services.sync_lock import DatabasePairLock, PairLockRegistry, build_lock, pair_key


class TestPairLockRegistry:
    
    def test_second_acquire_fails(self):
        registry = PairLockRegistry()
        
        assert registry.try_acquire("unit-1", "airbnb") is True
        assert registry.try_acquire("unit-1", "airbnb") is False
        assert registry.try_acquire("unit-1", "vrbo") is True
    
    def test_release_allows_reacquire(self):
        registry = PairLockRegistry()
        registry.try_acquire("unit-1", "airbnb")
        registry.release("unit-1", "airbnb")
        
        assert registry.is_locked("unit-1", "airbnb") is False
        assert registry.try_acquire("unit-1", "airbnb") is True
    
    def test_release_unheld_is_noop(self):
        PairLockRegistry().release("unit-1", "airbnb")
    
    def test_only_one_thread_wins(self):
        registry = PairLockRegistry()
        
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: registry.try_acquire("unit-1", "airbnb"), range(20)))
        
        assert results.count(True) == 1


class TestDatabasePairLock:
    
    def test_second_owner_is_refused(self, session_factory):
        first = DatabasePairLock(session_factory, ttl_seconds=60, owner="worker-a")
        second = DatabasePairLock(session_factory, ttl_seconds=60, owner="worker-b")
        
        assert first.try_acquire("unit-1", "airbnb") is True
        assert second.try_acquire("unit-1", "airbnb") is False
        assert second.is_locked("unit-1", "airbnb") is True
    
    def test_release_only_removes_own_row(self, session_factory, db):
        first = DatabasePairLock(session_factory, ttl_seconds=60, owner="worker-a")
        second = DatabasePairLock(session_factory, ttl_seconds=60, owner="worker-b")
        first.try_acquire("unit-1", "airbnb")
        
        second.release("unit-1", "airbnb")
        assert first.is_locked("unit-1", "airbnb") is True
        
        first.release("unit-1", "airbnb")
        assert first.is_locked("unit-1", "airbnb") is False
        assert db.query(SyncLock).count() == 0
    
    def test_expired_lock_taken_over(self, session_factory, db):
        db.add(SyncLock(
            lock_key=pair_key("unit-1", "airbnb"),
            locked_by="crashed-worker",
            locked_at=datetime.utcnow() - timedelta(hours=2),
            expires_at=datetime.utcnow() - timedelta(hours=1),
        ))
        db.commit()
        
        lock = DatabasePairLock(session_factory, ttl_seconds=60, owner="worker-a")
        
        assert lock.try_acquire("unit-1", "airbnb") is True
        db.expire_all()
        assert db.query(SyncLock).one().locked_by == "worker-a"

    def test_contended_lock_row_is_refused_without_waiting(self):
        """On PostgreSQL the lock row is read with NOWAIT; contention means skip"""
        session = MagicMock()
        session.bind.dialect.name = 'postgresql'
        locked_query = session.query.return_value.filter.return_value.with_for_update.return_value
        locked_query.first.side_effect = OperationalError(
            "SELECT", {}, Exception("could not obtain lock on row")
        )

        lock = DatabasePairLock(lambda: session, ttl_seconds=60, owner="worker-a")

        assert lock.try_acquire("unit-1", "airbnb") is False
        session.query.return_value.filter.return_value.with_for_update.assert_called_once_with(nowait=True)
        session.rollback.assert_called_once()
        session.commit.assert_not_called()
        session.close.assert_called_once()


class TestBuildLock:
    
    def test_backends(self, session_factory):
        assert isinstance(build_lock(session_factory, "memory"), PairLockRegistry)
        assert isinstance(build_lock(session_factory, "database"), DatabasePairLock)


class TestRowLocking:
    
    def test_lock_rows_uses_for_update_on_postgres(self):
        from calsync.utils.db_helpers import lock_rows
        
        db = MagicMock()
        db.bind.dialect.name = 'postgresql'
        query = MagicMock()
        
        lock_rows(db, query)
        
        query.with_for_update.assert_called_once_with()
    
    def test_lock_rows_skips_locking_on_sqlite(self):
        from calsync.utils.db_helpers import lock_rows
        
        db = MagicMock()
        db.bind.dialect.name = 'sqlite'
        query = MagicMock()
        
        assert lock_rows(db, query) is query
        query.with_for_update.assert_not_called()
    
    def test_acquire_row_lock_nowait(self):
        from calsync.utils.db_helpers import acquire_row_lock
        
        db = MagicMock()
        db.bind.dialect.name = 'postgresql'
        filter_mock = db.query.return_value.filter.return_value
        
        acquire_row_lock(db, SyncLock, SyncLock.lock_key == 'k', nowait=True)
        
        filter_mock.with_for_update.assert_called_once_with(nowait=True)
