"""
iCal Feed Parser

Turns a platform's published calendar into BookingInterval records.

Per-platform interpretation lives in PLATFORM_RULES:
- end_date_inclusive: whether the published DTEND is the last occupied night
  (inclusive) or the checkout day (exclusive). Airbnb, VRBO and our own direct
  export all publish RFC 5545 all-day events where DTEND is the checkout day,
  so every current platform is exclusive and the checkout is DTEND as-is.
- blocked_pattern: summaries that mark a "not available" placeholder rather
  than a guest stay. Those events are parsed (they count towards the feed
  fingerprint) but flagged is_reservation=False.
- guest_pattern: where the guest label sits in the summary.
- summary_suffix_is_phone: whether a trailing "(1234)" in the summary is the
  guest's phone suffix or a booking reference.
"""

import re
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Pattern, Union

from icalendar import Calendar

from ..exceptions import ParseError
from ..models.calendar_feed import Platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformRules:
    """Parsing adjustments for one platform"""
    end_date_inclusive: bool
    blocked_pattern: Pattern
    guest_pattern: Optional[Pattern]
    summary_suffix_is_phone: bool

    def checkout_from_end(self, end: date) -> date:
        """Convert the published end date into an exclusive checkout date."""
        if self.end_date_inclusive:
            return end + timedelta(days=1)
        return end


# "Reserved - Jane Doe (1207)" / "Booked: Jane Doe"
_GUEST_AFTER_PREFIX = re.compile(
    r"^\s*(?:reserved|booked|reservation)\s*[-:–]\s*(?P<guest>.+?)\s*$",
    re.IGNORECASE
)

PLATFORM_RULES: Dict[Platform, PlatformRules] = {
    Platform.AIRBNB: PlatformRules(
        end_date_inclusive=False,
        blocked_pattern=re.compile(r"not available|^\s*airbnb\b|^\s*blocked\b", re.IGNORECASE),
        guest_pattern=_GUEST_AFTER_PREFIX,
        summary_suffix_is_phone=True,
    ),
    Platform.VRBO: PlatformRules(
        end_date_inclusive=False,
        blocked_pattern=re.compile(r"^\s*blocked\b|not available|unavailable", re.IGNORECASE),
        guest_pattern=_GUEST_AFTER_PREFIX,
        summary_suffix_is_phone=True,
    ),
    Platform.DIRECT: PlatformRules(
        end_date_inclusive=False,
        blocked_pattern=re.compile(r"^\s*(?:blocked|unavailable|not available)\b", re.IGNORECASE),
        guest_pattern=_GUEST_AFTER_PREFIX,
        # Our own export appends the booking reference, not a phone number
        summary_suffix_is_phone=False,
    ),
}

# "Reserved (8772)"
TRAILING_DIGITS_PATTERN = re.compile(r"\s*\((\d{4})\)\s*$")

# "Phone Number (Last 4 Digits): 1207"
DESCRIPTION_PHONE_PATTERN = re.compile(r"(?:phone|tel)[^:\n]*:\s*(\d{4})\b", re.IGNORECASE)

# "Reservation URL: https://www.airbnb.com/hosting/reservations/details/HM25Z3NPQA"
URL_PATTERN = re.compile(r"https?://[^\s\\]+")
URL_REFERENCE_PATTERN = re.compile(r"/([A-Z0-9]{6,})/?$")


@dataclass
class BookingInterval:
    """One event of a feed, normalized. check_out is exclusive."""
    unit_id: str
    platform: str
    external_uid: str
    check_in: date
    check_out: date
    summary: str = ""
    description: Optional[str] = None
    guest_label: Optional[str] = None
    phone_last4: Optional[str] = None
    reservation_url: Optional[str] = None
    platform_reference: Optional[str] = None
    is_reservation: bool = True

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


class CalendarParser:
    """
    Parses raw iCal text into BookingInterval records.

    Results keep document order so that callers can apply last-one-wins for
    repeated UIDs. Malformed input raises ParseError and nothing is returned.
    """

    def __init__(self, rules: Optional[Dict[Platform, PlatformRules]] = None):
        self.rules = rules or PLATFORM_RULES

    def rules_for(self, platform: Union[Platform, str]) -> PlatformRules:
        platform = Platform(platform)
        if platform not in self.rules:
            raise ValueError(f"No parsing rules for platform '{platform.value}'")
        return self.rules[platform]

    def parse(
        self,
        text: str,
        unit_id: str,
        platform: Union[Platform, str]
    ) -> List[BookingInterval]:
        platform = Platform(platform)
        rules = self.rules_for(platform)

        if not text or "BEGIN:VCALENDAR" not in text.upper():
            raise ParseError("No calendar wrapper (BEGIN:VCALENDAR) found", block=(text or "")[:200])

        try:
            calendar = Calendar.from_ical(text)
        except ValueError as e:
            raise ParseError(f"Unreadable calendar: {e}")

        intervals = []
        for component in calendar.walk("VEVENT"):
            intervals.append(self._parse_event(component, unit_id, platform, rules))

        logger.debug(
            f"Parsed {len(intervals)} events for {unit_id}/{platform.value} "
            f"({sum(1 for i in intervals if i.is_reservation)} reservations)"
        )
        return intervals

    def _parse_event(self, component, unit_id: str, platform: Platform, rules: PlatformRules) -> BookingInterval:
        block = self._block_text(component)

        bad_dates = [name for name, _ in getattr(component, "errors", []) if name in ("DTSTART", "DTEND")]
        if bad_dates:
            raise ParseError(f"Unparseable {', '.join(bad_dates)}", block=block)

        check_in = self._as_date(component.get("DTSTART"), "DTSTART", block)
        if check_in is None:
            raise ParseError("Event has no DTSTART", block=block)

        end = self._as_date(component.get("DTEND"), "DTEND", block)
        if end is None:
            duration = component.get("DURATION")
            if duration is not None and isinstance(duration.dt, timedelta):
                end = check_in + timedelta(days=max(duration.dt.days, 1))
            else:
                # RFC 5545: an all-day event without DTEND lasts one day
                end = check_in + timedelta(days=1)

        check_out = rules.checkout_from_end(end)
        if check_out <= check_in:
            raise ParseError(
                f"Check-out {check_out.isoformat()} is not after check-in {check_in.isoformat()}",
                block=block
            )

        summary = str(component.get("SUMMARY", "") or "").strip()
        description = component.get("DESCRIPTION")
        description = str(description).strip() if description is not None else None

        uid = str(component.get("UID", "") or "").strip()
        if not uid:
            uid = f"{platform.value}-{check_in:%Y%m%d}-{check_out:%Y%m%d}"

        interval = BookingInterval(
            unit_id=unit_id,
            platform=platform.value,
            external_uid=uid,
            check_in=check_in,
            check_out=check_out,
            summary=summary,
            description=description,
            is_reservation=not rules.blocked_pattern.search(summary),
        )
        self._extract_guest_details(interval, rules)
        return interval

    def _extract_guest_details(self, interval: BookingInterval, rules: PlatformRules):
        """Fill guest label, phone suffix and booking reference."""
        summary = interval.summary

        trailing = TRAILING_DIGITS_PATTERN.search(summary)
        if trailing:
            summary = summary[:trailing.start()]
            if rules.summary_suffix_is_phone:
                interval.phone_last4 = trailing.group(1)
            else:
                interval.platform_reference = trailing.group(1)

        if interval.description:
            phone = DESCRIPTION_PHONE_PATTERN.search(interval.description)
            if phone:
                interval.phone_last4 = phone.group(1)

            url = URL_PATTERN.search(interval.description)
            if url:
                interval.reservation_url = url.group(0)
                reference = URL_REFERENCE_PATTERN.search(interval.reservation_url)
                if reference:
                    interval.platform_reference = reference.group(1)

        if interval.is_reservation and rules.guest_pattern:
            guest = rules.guest_pattern.match(summary)
            if guest:
                interval.guest_label = guest.group("guest").strip() or None

    @staticmethod
    def _as_date(prop, name: str, block: str) -> Optional[date]:
        if prop is None:
            return None
        value = getattr(prop, "dt", None)
        # datetime is a subclass of date, check it first
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        raise ParseError(f"Unparseable {name}: {value!r}", block=block)

    @staticmethod
    def _block_text(component) -> str:
        try:
            return component.to_ical().decode("utf-8", errors="replace")
        except Exception:
            return str(component.get("UID", ""))
