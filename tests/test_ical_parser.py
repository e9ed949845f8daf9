"""
Tests for the iCal feed parser

Tests cover:
- Blocked placeholders vs reservations
- Phone suffix, reservation URL and booking reference extraction
- Per-platform end date convention
- Malformed input
"""

import pytest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from calsync.exceptions import ParseError
from calsync.models.calendar_feed import Platform
from calsync.services.ical_parser import CalendarParser, PLATFORM_RULES, PlatformRules

from conftest import make_feed


class TestAirbnbFeed:
    """Parsing a real-shaped Airbnb export"""
    
    def test_block_event_is_not_a_reservation(self, airbnb_feed):
        """One blocked and one reserved event -> one reservation, blocked kept for the fingerprint"""
        intervals = CalendarParser().parse(airbnb_feed, "unit-1", Platform.AIRBNB)
        
        assert len(intervals) == 2
        reservations = [i for i in intervals if i.is_reservation]
        assert len(reservations) == 1
        
        booking = reservations[0]
        assert booking.check_in == date(2025, 9, 17)
        assert booking.phone_last4 == "8772"
        assert booking.external_uid == "1418fb94e984-reserved@airbnb.com"
    
    def test_checkout_is_end_date(self, airbnb_feed):
        """Airbnb DTEND is the checkout day: Sep 17 - Sep 20 is three nights"""
        booking = [i for i in CalendarParser().parse(airbnb_feed, "unit-1", "airbnb") if i.is_reservation][0]
        
        assert booking.check_out == date(2025, 9, 20)
        assert booking.nights == 3
    
    def test_reservation_url_and_reference(self, airbnb_feed):
        booking = [i for i in CalendarParser().parse(airbnb_feed, "unit-1", "airbnb") if i.is_reservation][0]
        
        assert booking.reservation_url == "https://www.airbnb.com/hosting/reservations/details/HM25Z3NPQA"
        assert booking.platform_reference == "HM25Z3NPQA"
    
    def test_blocked_event_has_no_guest(self, airbnb_feed):
        blocked = [i for i in CalendarParser().parse(airbnb_feed, "unit-1", "airbnb") if not i.is_reservation][0]
        
        assert blocked.guest_label is None
        assert blocked.summary == "Airbnb (Not available)"


class TestSummaryParsing:
    
    def test_guest_label_from_summary(self):
        feed = make_feed(("u1", date(2025, 10, 1), date(2025, 10, 4), "Reserved - Jane Doe (1207)"))
        
        booking = CalendarParser().parse(feed, "unit-1", Platform.VRBO)[0]
        
        assert booking.guest_label == "Jane Doe"
        assert booking.phone_last4 == "1207"
    
    def test_vrbo_blocked(self):
        feed = make_feed(("u1", date(2025, 10, 1), date(2025, 10, 4), "Blocked"))
        
        assert CalendarParser().parse(feed, "unit-1", Platform.VRBO)[0].is_reservation is False
    
    def test_direct_suffix_is_booking_reference(self):
        """Our own export appends a booking reference, not a phone suffix"""
        feed = make_feed(("d1", date(2025, 10, 1), date(2025, 10, 4), "Booked: Sam Lee (4410)"))
        
        booking = CalendarParser().parse(feed, "unit-1", Platform.DIRECT)[0]
        
        assert booking.platform_reference == "4410"
        assert booking.phone_last4 is None
        assert booking.guest_label == "Sam Lee"
    
    def test_missing_uid_gets_stable_identity(self):
        feed = (
            "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nBEGIN:VEVENT\r\n"
            "DTSTART;VALUE=DATE:20251001\r\nDTEND;VALUE=DATE:20251003\r\n"
            "SUMMARY:Reserved\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"
        )
        
        first = CalendarParser().parse(feed, "unit-1", "vrbo")[0]
        second = CalendarParser().parse(feed, "unit-1", "vrbo")[0]
        
        assert first.external_uid == "vrbo-20251001-20251003"
        assert first.external_uid == second.external_uid
    
    def test_missing_dtend_is_one_night(self):
        feed = (
            "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nBEGIN:VEVENT\r\n"
            "DTSTART;VALUE=DATE:20251001\r\nUID:x1\r\n"
            "SUMMARY:Reserved\r\nEND:VEVENT\r\nEND:VCALENDAR\r\n"
        )
        
        booking = CalendarParser().parse(feed, "unit-1", "airbnb")[0]
        
        assert booking.check_out == date(2025, 10, 2)
    
    def test_document_order_is_kept(self):
        feed = make_feed(
            ("b", date(2025, 10, 5), date(2025, 10, 6), "Reserved"),
            ("a", date(2025, 10, 1), date(2025, 10, 2), "Reserved"),
        )
        
        uids = [i.external_uid for i in CalendarParser().parse(feed, "unit-1", "airbnb")]
        
        assert uids == ["b", "a"]


class TestEndDateRules:
    
    def test_every_platform_has_rules(self):
        assert set(PLATFORM_RULES) == set(Platform)
    
    def test_inclusive_rule_adds_a_day(self):
        """A platform publishing the last night as DTEND gets one day added"""
        rules = PlatformRules(
            end_date_inclusive=True,
            blocked_pattern=PLATFORM_RULES[Platform.AIRBNB].blocked_pattern,
            guest_pattern=None,
            summary_suffix_is_phone=True,
        )
        parser = CalendarParser(rules={Platform.AIRBNB: rules})
        feed = make_feed(("u1", date(2025, 9, 17), date(2025, 9, 19), "Reserved"))
        
        booking = parser.parse(feed, "unit-1", "airbnb")[0]
        
        assert booking.check_out == date(2025, 9, 20)
    
    def test_unknown_platform_rejected(self):
        with pytest.raises(ValueError):
            CalendarParser().parse(make_feed(), "unit-1", "expedia")


class TestMalformedFeeds:
    
    def test_empty_calendar_has_no_events(self):
        assert CalendarParser().parse(make_feed(), "unit-1", "airbnb") == []
    
    def test_html_error_page(self):
        with pytest.raises(ParseError):
            CalendarParser().parse("<html><body>Login required</body></html>", "unit-1", "airbnb")
    
    def test_empty_body(self):
        with pytest.raises(ParseError):
            CalendarParser().parse("", "unit-1", "airbnb")
    
    def test_end_before_start(self):
        feed = make_feed(("u1", date(2025, 9, 20), date(2025, 9, 17), "Reserved"))
        
        with pytest.raises(ParseError) as exc:
            CalendarParser().parse(feed, "unit-1", "airbnb")
        
        assert "not after check-in" in str(exc.value)
    
    def test_zero_night_event(self):
        feed = make_feed(("u1", date(2025, 9, 20), date(2025, 9, 20), "Reserved"))
        
        with pytest.raises(ParseError):
            CalendarParser().parse(feed, "unit-1", "airbnb")
