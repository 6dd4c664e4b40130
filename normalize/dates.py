from __future__ import annotations

import calendar
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from zoneinfo import ZoneInfo

import dateparser


_MONTHS = {
    "jan": 1,
    "january": 1,
    "januari": 1,
    "feb": 2,
    "february": 2,
    "mar": 3,
    "march": 3,
    "mars": 3,
    "apr": 4,
    "april": 4,
    "may": 5,
    "maj": 5,
    "mai": 5,
    "jun": 6,
    "june": 6,
    "juni": 6,
    "jul": 7,
    "july": 7,
    "juli": 7,
    "aug": 8,
    "august": 8,
    "augusti": 8,
    "sep": 9,
    "sept": 9,
    "september": 9,
    "oct": 10,
    "october": 10,
    "okt": 10,
    "oktober": 10,
    "nov": 11,
    "november": 11,
    "dec": 12,
    "december": 12,
    "des": 12,
    "desember": 12,
}

_WS_RE = re.compile(r"\s+")
_DIGIT_RE = re.compile(r"\d")
_LOOSE_SEPARATORS_RE = re.compile(r"[•|,]+")
# "pm" would otherwise be read as an unknown RFC 2822 zone.
_AMPM_RE = re.compile(r"(?<![A-Za-z])[AaPp]\.?[Mm]\b")

# "Sat, 25 March 7:30pm", "25 Dec • 19:30 2026"
_DAY_MONTH_TIME_RE = re.compile(
    r"(?:^[A-Za-zäöåÄÖÅ]{3,},?\s*)?"
    r"(?P<day>\d{1,2})\s+(?P<mon>[A-Za-z]{3,})\.?\s*"
    r"(?:[•\-|]\s*)?"
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})"
    r"(?:\s*(?P<ampm>[AaPp]\.?[Mm]))?"
    r"(?:\s*(?P<year>\d{4}))?"
)

# "25/Dec", "25-Dec-2025", "Fri 25 Dec 2025, 19:30"
_DAY_MONTH_RE = re.compile(
    r"(?:^[A-Za-zäöåÄÖÅ]{3,},?\s*)?"
    r"(?P<day>\d{1,2})[/\s\-.]+(?P<mon>[A-Za-z]{3,})\.?"
    r"(?:[/\s\-.,]+(?P<year>\d{4}|\d{2})(?![\d:]))?"
    r"(?:[\s,•|\-]+(?P<hour>\d{1,2}):(?P<minute>\d{2})(?:\s*(?P<ampm>[AaPp]\.?[Mm]))?)?"
)

# "25/12/2025", "25-12-25 19:30", "25.12.2025 19:30:15"
_NUMERIC_DMY_RE = re.compile(
    r"^(?P<day>\d{1,2})[/\-.](?P<month>\d{1,2})[/\-.](?P<year>\d{4}|\d{2})(?!\d)"
    r"(?:\s+(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?)?"
)


def to_iso(dt: datetime) -> str:
    return dt.astimezone(tz=UTC).isoformat().replace("+00:00", "Z")


def clean_date_text(raw: object) -> str:
    text = str(raw).replace("\u00a0", " ")
    return _WS_RE.sub(" ", text).strip()


def _month_number(name: str) -> int | None:
    key = name.casefold()
    return _MONTHS.get(key) or _MONTHS.get(key[:3])


def _expand_year(year_text: str) -> int:
    year = int(year_text)
    if len(year_text) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _apply_ampm(hour: int, ampm: str | None) -> int:
    if not ampm:
        return hour
    marker = ampm.replace(".", "").casefold()
    if marker == "pm" and hour < 12:
        return hour + 12
    if marker == "am" and hour == 12:
        return 0
    return hour


def _build(
    *,
    year: int | None,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int = 0,
    zone: ZoneInfo,
    now: datetime,
) -> datetime | None:
    explicit_year = year is not None
    if year is None:
        year = now.astimezone(zone).year
    try:
        candidate = datetime(year, month, day, hour, minute, second, tzinfo=zone)
        if not explicit_year and candidate < now:
            candidate = candidate.replace(year=year + 1)
    except ValueError:
        return None
    return candidate


def _parse_direct(text: str, zone: ZoneInfo) -> datetime | None:
    iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        dt = datetime.fromisoformat(iso_text)
    except ValueError:
        dt = None
    if dt is None:
        if _AMPM_RE.search(text):
            return None
        try:
            dt = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    return dt


def _parse_day_month_time(
    text: str, zone: ZoneInfo, now: datetime
) -> datetime | None:
    for match in _DAY_MONTH_TIME_RE.finditer(text):
        month = _month_number(match.group("mon"))
        if month is None:
            continue
        year = match.group("year")
        return _build(
            year=int(year) if year else None,
            month=month,
            day=int(match.group("day")),
            hour=_apply_ampm(int(match.group("hour")), match.group("ampm")),
            minute=int(match.group("minute")),
            zone=zone,
            now=now,
        )
    return None


def _parse_day_month(text: str, zone: ZoneInfo, now: datetime) -> datetime | None:
    for match in _DAY_MONTH_RE.finditer(text):
        month = _month_number(match.group("mon"))
        if month is None:
            continue
        year = match.group("year")
        hour = match.group("hour")
        return _build(
            year=_expand_year(year) if year else None,
            month=month,
            day=int(match.group("day")),
            hour=_apply_ampm(int(hour), match.group("ampm")) if hour else 0,
            minute=int(match.group("minute") or 0),
            zone=zone,
            now=now,
        )
    return None


def _parse_numeric_dmy(text: str, zone: ZoneInfo, now: datetime) -> datetime | None:
    match = _NUMERIC_DMY_RE.match(text)
    if match is None:
        return None
    return _build(
        year=_expand_year(match.group("year")),
        month=int(match.group("month")),
        day=int(match.group("day")),
        hour=int(match.group("hour") or 0),
        minute=int(match.group("minute") or 0),
        second=int(match.group("second") or 0),
        zone=zone,
        now=now,
    )


def _parse_loose(text: str, zone: ZoneInfo, now: datetime) -> datetime | None:
    loose = _WS_RE.sub(" ", _LOOSE_SEPARATORS_RE.sub(" ", text)).strip()
    if not _DIGIT_RE.search(loose):
        return None
    dt = dateparser.parse(
        loose,
        settings={
            "TIMEZONE": zone.key,
            "RETURN_AS_TIMEZONE_AWARE": True,
            "DATE_ORDER": "DMY",
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": now.astimezone(zone).replace(tzinfo=None),
            "REQUIRE_PARTS": ["day", "month"],
            "PARSERS": ["custom-formats", "absolute-time"],
        },
    )
    if dt is not None and dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone)
    return dt


def normalize_date(
    raw: object, *, now: datetime | None = None, tz: str = "UTC"
) -> str | None:
    """Coerce a source date string into a canonical UTC ISO-8601 instant.

    Strategies are tried in order: direct ISO/RFC 2822 parse, "25 March
    7:30pm" style, "25/Dec[/2025]" style, day-first numeric, then a
    permissive parse. Month-name forms without a year assume the current
    year and roll forward one year when that instant has already passed.
    When nothing matches the cleaned input is returned unchanged so the
    caller can still inspect it.
    """
    if raw is None:
        return None
    text = clean_date_text(raw)
    if not text:
        return None

    zone = ZoneInfo(tz)
    if now is None:
        now = datetime.now(tz=UTC)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    dt = _parse_direct(text, zone)
    if dt is None:
        dt = _parse_day_month_time(text, zone, now)
    if dt is None:
        dt = _parse_day_month(text, zone, now)
    if dt is None:
        dt = _parse_numeric_dmy(text, zone, now)
    if dt is None:
        dt = _parse_loose(text, zone, now)
    if dt is None:
        return text
    return to_iso(dt)


def parse_instant(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return None
    return dt.astimezone(tz=UTC)


def is_canonical_instant(value: object) -> bool:
    return parse_instant(value) is not None


def add_months(dt: datetime, months: int) -> datetime:
    # Day is clamped to the target month's length: Jan 31 + 1 -> Feb 28/29.
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)
