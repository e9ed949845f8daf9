"""
Shared fixtures

Each test gets its own SQLite file so that sessions opened by worker
threads see what the test committed.
"""

import pytest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from calsync.database import Base
from calsync import models  # noqa: F401


AIRBNB_FEED = """BEGIN:VCALENDAR
PRODID:-//Airbnb Inc//Hosting Calendar 1.0//EN
CALSCALE:GREGORIAN
VERSION:2.0
BEGIN:VEVENT
DTEND;VALUE=DATE:20250925
DTSTART;VALUE=DATE:20250922
UID:1418fb94e984-blocked@airbnb.com
SUMMARY:Airbnb (Not available)
END:VEVENT
BEGIN:VEVENT
DTEND;VALUE=DATE:20250920
DTSTART;VALUE=DATE:20250917
UID:1418fb94e984-reserved@airbnb.com
DESCRIPTION:Reservation URL: https://www.airbnb.com/hosting/reservations/details/HM25Z3NPQA\\nPhone Number (Last 4 Digits): 8772
SUMMARY:Reserved (8772)
END:VEVENT
END:VCALENDAR
"""


def make_feed(*events) -> str:
    """
    Build a minimal feed from (uid, start, end, summary) tuples, dates as
    datetime.date.
    """
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//test//calsync//EN"]
    for uid, start, end, summary in events:
        lines += [
            "BEGIN:VEVENT",
            f"DTSTART;VALUE=DATE:{start:%Y%m%d}",
            f"DTEND;VALUE=DATE:{end:%Y%m%d}",
            f"UID:{uid}",
            f"SUMMARY:{summary}",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'calsync_test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def airbnb_feed():
    return AIRBNB_FEED


@pytest.fixture
def sept():
    """Shortcut for September 2025 dates"""
    return lambda day: date(2025, 9, day)
