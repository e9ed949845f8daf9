"""
Database Helper Utilities for Concurrency Control

Provides:
- Database dialect detection (PostgreSQL vs SQLite)
- Row locking helpers that degrade to plain reads on SQLite
"""

import logging
from typing import Optional, TypeVar, Type
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

T = TypeVar('T')


def is_postgres(db: Session) -> bool:
    """Check if the database is PostgreSQL"""
    try:
        dialect = db.bind.dialect.name
        return dialect == 'postgresql'
    except Exception:
        return False


def acquire_row_lock(
    db: Session,
    model: Type[T],
    filter_condition,
    nowait: bool = False
) -> Optional[T]:
    """
    Acquire a row-level lock on a database record.
    
    Args:
        db: Database session
        model: SQLAlchemy model class
        filter_condition: Filter to find the row
        nowait: If True, raise error immediately if lock unavailable (PostgreSQL only)
    
    Returns:
        The locked model instance, or None if not found
    
    Raises:
        OperationalError: If nowait=True and row is locked by another transaction
    
    Example:
        record = acquire_row_lock(db, StagedReservation, StagedReservation.id == staged_id)
    """
    query = db.query(model).filter(filter_condition)
    
    # Only apply locking on PostgreSQL
    if is_postgres(db):
        if nowait:
            query = query.with_for_update(nowait=True)
        else:
            query = query.with_for_update()
    
    return query.first()


def lock_rows(db: Session, query):
    """Apply FOR UPDATE to a multi-row query on PostgreSQL."""
    if is_postgres(db):
        return query.with_for_update()
    return query
