"""
Calendar Sync Orchestrator

Drives fetch -> parse -> checksum gate -> reconcile -> conflict detection ->
ledger write for every active (unit, platform) pair.

- Pairs run on a bounded thread pool; only the fetch blocks.
- Each pair runs under its own lock and its own session. A pair that is
  already syncing is skipped for this tick.
- Staged writes, snapshot, conflicts and the SyncRun row of one pair commit
  in a single transaction.
- A pair whose feed changed locks its unit before writing, so same-unit pairs
  see each other's staged rows when conflicts are recomputed.
- The SyncRun id is chosen up front and doubles as the log context id.
- Any error stays inside its pair and becomes a FAILED SyncRun with an alert.
"""

import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..exceptions import FetchError, ParseError
from ..models.calendar_feed import CalendarFeed
from ..models.sync_run import AlertSeverity, AlertType, SyncOutcome
from ..utils.logging_config import get_logger, set_sync_run_context, clear_sync_run_context
from .checksum_gate import ChecksumGate
from .conflict_detector import ConflictDetector, ConflictRecord
from .feed_fetcher import FeedFetcher
from .ical_parser import CalendarParser
from .staging_reconciler import AlertDraft, StagingReconciler
from .sync_ledger import SyncLedger
from .sync_lock import build_lock

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedPair:
    unit_id: str
    platform: str
    feed_url: str


@dataclass
class PairSyncResult:
    unit_id: str
    platform: str
    outcome: Optional[str] = None  # None when the pair was skipped
    skipped: bool = False
    counts: Dict[str, int] = field(default_factory=dict)
    sync_run_id: Optional[str] = None
    error: Optional[str] = None


def load_active_pairs(db: Session, unit_id: Optional[str] = None) -> List[FeedPair]:
    """Active pairs from the calendar_feeds registry"""
    query = db.query(CalendarFeed).filter(CalendarFeed.is_active == True)
    if unit_id:
        query = query.filter(CalendarFeed.unit_id == unit_id)
    return [
        FeedPair(unit_id=f.unit_id, platform=f.platform, feed_url=f.feed_url)
        for f in query.order_by(CalendarFeed.unit_id, CalendarFeed.platform).all()
    ]


def _conflict_alert(unit_id: str, conflicts: List[ConflictRecord]) -> AlertDraft:
    spans = ", ".join(
        f"{c.overlap_start.isoformat()} → {c.overlap_end.isoformat()} ({c.severity})"
        for c in conflicts[:5]
    )
    count = len(conflicts)
    return AlertDraft(
        alert_type=AlertType.CONFLICT.value,
        severity=AlertSeverity.WARNING.value,
        title=f"{count} booking conflict{'' if count == 1 else 's'} on unit {unit_id}",
        message=f"Overlapping stays detected: {spans}. Resolve before confirming.",
        staged_id=conflicts[0].staged_id,
    )


class SyncOrchestrator:

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        fetcher: Optional[FeedFetcher] = None,
        parser: Optional[CalendarParser] = None,
        lock=None,
        pool_size: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher or FeedFetcher()
        self.parser = parser or CalendarParser()
        self.lock = lock or build_lock(session_factory)
        self.pool_size = pool_size or settings.sync_pool_size

    def run_tick(
        self,
        pairs: Optional[List[FeedPair]] = None,
        unit_id: Optional[str] = None
    ) -> List[PairSyncResult]:
        """Sync every active pair once. Never raises for a single pair's failure."""
        if pairs is None:
            db = self.session_factory()
            try:
                pairs = load_active_pairs(db, unit_id)
            finally:
                db.close()

        if not pairs:
            return []

        start = time.time()
        results: List[PairSyncResult] = []
        workers = min(self.pool_size, len(pairs))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="calsync") as pool:
            futures = {pool.submit(self.sync_pair, pair): pair for pair in pairs}
            for future in as_completed(futures):
                pair = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.exception(f"Unhandled error syncing {pair.unit_id}/{pair.platform}: {e}")
                    results.append(PairSyncResult(
                        unit_id=pair.unit_id,
                        platform=pair.platform,
                        outcome=SyncOutcome.FAILED.value,
                        error=str(e)
                    ))

        summary: Dict[str, int] = {}
        for r in results:
            key = "skipped" if r.skipped else r.outcome
            summary[key] = summary.get(key, 0) + 1
        logger.info(
            f"Calendar sync tick: {len(pairs)} pairs, "
            + ", ".join(f"{v} {k}" for k, v in sorted(summary.items()))
            + f" in {time.time() - start:.2f}s"
        )
        return results

    def sync_pair(self, pair: FeedPair) -> PairSyncResult:
        if not self.lock.try_acquire(pair.unit_id, pair.platform):
            logger.debug(f"Skipping {pair.unit_id}/{pair.platform}: previous sync still running")
            return PairSyncResult(unit_id=pair.unit_id, platform=pair.platform, skipped=True)

        run_id = str(uuid.uuid4())
        set_sync_run_context(run_id)
        try:
            return self._sync_locked(pair, run_id)
        finally:
            clear_sync_run_context()
            self.lock.release(pair.unit_id, pair.platform)

    def _sync_locked(self, pair: FeedPair, run_id: str) -> PairSyncResult:
        started_at = datetime.utcnow()
        start = time.time()
        db = self.session_factory()
        try:
            try:
                text = self.fetcher.fetch(pair.feed_url, pair.unit_id, pair.platform)
                intervals = self.parser.parse(text, pair.unit_id, pair.platform)
            except FetchError as e:
                return self._fail(
                    db, pair, run_id, started_at, e, AlertSeverity.WARNING,
                    "Calendar feed unreachable"
                )
            except ParseError as e:
                return self._fail(
                    db, pair, run_id, started_at, e, AlertSeverity.CRITICAL,
                    "Calendar feed could not be parsed"
                )

            gate = ChecksumGate(db)
            decision = gate.evaluate(intervals, gate.get_snapshot(pair.unit_id, pair.platform))
            ledger = SyncLedger(db)

            if not decision.changed:
                run = ledger.record_run(
                    pair.unit_id,
                    pair.platform,
                    SyncOutcome.UNCHANGED,
                    started_at=started_at,
                    run_id=run_id,
                    events_found=len(intervals),
                    checksum=decision.fingerprint
                )
                db.commit()
                return self._done(pair, run, start)

            detector = ConflictDetector(db)
            detector.lock_unit(pair.unit_id)

            reservations = [i for i in intervals if i.is_reservation]
            reconciled = StagingReconciler(db).reconcile(pair.unit_id, pair.platform, reservations)
            gate.store_snapshot(pair.unit_id, pair.platform, decision.fingerprint, len(intervals))

            conflicts, new_conflicts = detector.refresh_unit(pair.unit_id)
            pair_ids = {r.id for r in reconciled.records}
            pair_conflicts = [c for c in conflicts if c.staged_id in pair_ids or c.other_id in pair_ids]
            new_pair_conflicts = [c for c in new_conflicts if c.staged_id in pair_ids or c.other_id in pair_ids]

            alerts = list(reconciled.alerts)
            if new_pair_conflicts:
                alerts.append(_conflict_alert(pair.unit_id, new_pair_conflicts))

            run = ledger.record_run(
                pair.unit_id,
                pair.platform,
                SyncOutcome.UPDATED,
                started_at=started_at,
                run_id=run_id,
                counts={
                    "new": reconciled.new,
                    "changed": reconciled.changed,
                    "removed": reconciled.removed,
                    "conflicts": len(pair_conflicts),
                },
                alerts=alerts,
                events_found=len(intervals),
                checksum=decision.fingerprint
            )
            db.commit()
            return self._done(pair, run, start)

        except Exception as e:
            db.rollback()
            logger.exception(f"Calendar sync failed for {pair.unit_id}/{pair.platform}: {e}")
            return self._fail(db, pair, run_id, started_at, e, AlertSeverity.CRITICAL, "Calendar sync failed")
        finally:
            db.close()

    def _fail(
        self,
        db: Session,
        pair: FeedPair,
        run_id: str,
        started_at: datetime,
        error: Exception,
        severity: AlertSeverity,
        title: str
    ) -> PairSyncResult:
        """Record a FAILED run. Nothing else of this pass has been written."""
        db.rollback()
        run = SyncLedger(db).record_run(
            pair.unit_id,
            pair.platform,
            SyncOutcome.FAILED,
            started_at=started_at,
            run_id=run_id,
            alerts=[AlertDraft(
                alert_type=AlertType.SYNC_ERROR.value,
                severity=severity.value,
                title=f"{title} ({pair.platform})",
                message=str(error)
            )],
            error_message=str(error)
        )
        db.commit()
        logger.sync_run_recorded(pair.unit_id, pair.platform, run.outcome, run.counts)
        return PairSyncResult(
            unit_id=pair.unit_id,
            platform=pair.platform,
            outcome=run.outcome,
            counts=run.counts,
            sync_run_id=run.id,
            error=str(error)
        )

    @staticmethod
    def _done(pair: FeedPair, run, start: float) -> PairSyncResult:
        logger.sync_run_recorded(
            pair.unit_id,
            pair.platform,
            run.outcome,
            run.counts,
            duration_ms=round((time.time() - start) * 1000, 1)
        )
        return PairSyncResult(
            unit_id=pair.unit_id,
            platform=pair.platform,
            outcome=run.outcome,
            counts=run.counts,
            sync_run_id=run.id
        )


@lru_cache()
def get_orchestrator() -> SyncOrchestrator:
    """Process-wide orchestrator, so the in-memory lock registry spans ticks"""
    return SyncOrchestrator()


def run_calendar_sync_tick(unit_id: Optional[str] = None) -> List[PairSyncResult]:
    return get_orchestrator().run_tick(unit_id=unit_id)
