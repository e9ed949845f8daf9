"""
Tests for the calendar sync API
"""

import pytest
from datetime import date, datetime
from unittest.mock import patch

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient

from calsync.database import get_db
from calsync.main import app
from calsync.models.staged_reservation import StagedReservation, StageStatus
from calsync.models.sync_run import SyncOutcome, AlertSeverity, AlertType
from calsync.services.calendar_sync import PairSyncResult
from calsync.services.staging_reconciler import AlertDraft
from calsync.services.sync_ledger import SyncLedger


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()
    
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _staged(db, uid="a", status=StageStatus.PENDING.value):
    record = StagedReservation(
        unit_id="unit-1",
        platform="airbnb",
        external_uid=uid,
        check_in_date=date(2025, 9, 17),
        check_out_date=date(2025, 9, 20),
        stage_status=status,
    )
    db.add(record)
    db.commit()
    return record


class TestStatus:
    
    def test_status_widget(self, client, db):
        SyncLedger(db).record_run(
            "unit-1", "airbnb", SyncOutcome.FAILED,
            started_at=datetime(2025, 9, 1, 8, 0),
            alerts=[AlertDraft(
                alert_type=AlertType.SYNC_ERROR.value,
                severity=AlertSeverity.WARNING.value,
                title="Calendar feed unreachable (airbnb)",
                message="HTTP 503 from feed",
            )],
            error_message="HTTP 503 from feed"
        )
        _staged(db)
        
        response = client.get("/api/calendar-sync/status")
        
        assert response.status_code == 200
        data = response.json()
        assert data["pending_count"] == 1
        assert data["units"][0]["platforms"][0]["outcome"] == "failed"
        assert data["alerts"][0]["title"] == "Calendar feed unreachable (airbnb)"
        assert "running" in data["scheduler"]


class TestReviewEndpoints:
    
    def test_list_pending(self, client, db):
        _staged(db, "a")
        _staged(db, "b", status=StageStatus.REJECTED.value)
        
        response = client.get("/api/calendar-sync/staged")
        
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["external_uid"] == "a"
        assert data["items"][0]["nights"] == 3
        assert data["items"][0]["conflicts"] == []
    
    def test_confirm(self, client, db):
        record = _staged(db)
        
        response = client.post(
            f"/api/calendar-sync/staged/{record.id}/confirm",
            json={"reviewed_by": "ops", "reservation_id": "res-1"}
        )
        
        assert response.status_code == 200
        assert response.json()["stage_status"] == "confirmed"
        assert response.json()["reservation_id"] == "res-1"
    
    def test_confirm_unknown_is_404(self, client):
        response = client.post("/api/calendar-sync/staged/missing/confirm")
        
        assert response.status_code == 404
    
    def test_reject_confirmed_is_409(self, client, db):
        record = _staged(db, status=StageStatus.CONFIRMED.value)
        
        response = client.post(f"/api/calendar-sync/staged/{record.id}/reject", json={"notes": "dup"})
        
        assert response.status_code == 409
    
    def test_reject(self, client, db):
        record = _staged(db)
        
        response = client.post(f"/api/calendar-sync/staged/{record.id}/reject")
        
        assert response.status_code == 200
        assert response.json()["stage_status"] == "rejected"


class TestAlertEndpoints:
    
    def _alert_id(self, db):
        run = SyncLedger(db).record_run(
            "unit-1", "vrbo", SyncOutcome.FAILED,
            started_at=datetime(2025, 9, 1, 8, 0),
            alerts=[AlertDraft(
                alert_type=AlertType.SYNC_ERROR.value,
                severity=AlertSeverity.CRITICAL.value,
                title="Calendar feed could not be parsed (vrbo)",
                message="No calendar wrapper (BEGIN:VCALENDAR) found",
            )]
        )
        db.commit()
        return run.alerts[0].id
    
    def test_list_and_resolve(self, client, db):
        alert_id = self._alert_id(db)
        
        assert len(client.get("/api/calendar-sync/alerts").json()) == 1
        
        response = client.post(f"/api/calendar-sync/alerts/{alert_id}/resolve", json={"resolved_by": "ops"})
        assert response.status_code == 200
        assert response.json()["is_resolved"] is True
        
        assert client.get("/api/calendar-sync/alerts").json() == []
        assert len(client.get("/api/calendar-sync/alerts", params={"include_resolved": True}).json()) == 1
    
    def test_mark_read(self, client, db):
        alert_id = self._alert_id(db)
        
        response = client.post(f"/api/calendar-sync/alerts/{alert_id}/read")
        
        assert response.json()["is_read"] is True
    
    def test_unknown_alert_is_404(self, client):
        assert client.post("/api/calendar-sync/alerts/missing/read").status_code == 404


class TestManualRun:
    
    def test_run_returns_pair_results(self, client):
        results = [
            PairSyncResult(unit_id="unit-1", platform="airbnb", outcome="updated",
                           counts={"new": 1, "changed": 0, "removed": 0, "conflicts": 0}),
            PairSyncResult(unit_id="unit-1", platform="vrbo", skipped=True),
        ]
        
        with patch("calsync.routers.calendar_sync.run_calendar_sync_tick", return_value=results) as tick:
            response = client.post("/api/calendar-sync/run", json={"unit_id": "unit-1"})
        
        tick.assert_called_once_with(unit_id="unit-1")
        assert response.status_code == 200
        data = response.json()
        assert data["pairs"] == 2
        assert data["results"][1]["skipped"] is True
        assert data["results"][0]["counts"]["new"] == 1
