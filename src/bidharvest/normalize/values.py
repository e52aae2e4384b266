from __future__ import annotations

import re
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_WS_PATTERN = re.compile(r"\s+")
_TIME_SUFFIX_PATTERN = re.compile(r"\s*(?:@|\bat\b)\s*", flags=re.IGNORECASE)
_TZ_SUFFIX_PATTERN = re.compile(r"\s+\(?(?:ET|EST|EDT|CT|CST|CDT|MT|MST|MDT|PT|PST|PDT|UTC|GMT)\)?$", flags=re.IGNORECASE)
_ISO_DATE_PATTERN = re.compile(r"\b(\d{4}-\d{2}-\d{2})(?:[T ](\d{2}:\d{2}(?::\d{2})?))?")
_US_DATE_PATTERN = re.compile(r"\b(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})(?:\s+(\d{1,2}:\d{2}(?::\d{2})?\s*[AaPp][Mm]?))?")
_LONG_DATE_PATTERN = re.compile(
    r"\b((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?\s+\d{1,2},?\s+\d{4})"
    r"(?:\s+(\d{1,2}:\d{2}\s*[AaPp][Mm]))?",
    flags=re.IGNORECASE,
)
_MONEY_PATTERN = re.compile(
    r"(\d[\d,]*(?:\.\d+)?)\s*(thousand|million|billion|mm|bn|k|m|b)?(?![a-z])",
    flags=re.IGNORECASE,
)
_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mm": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
}
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,5}$")

STATUS_SYNONYMS: dict[str, str] = {
    "open": "open",
    "active": "open",
    "posted": "open",
    "available": "open",
    "closed": "closed",
    "expired": "closed",
    "ended": "closed",
    "awarded": "awarded",
    "completed": "awarded",
    "cancelled": "cancelled",
    "canceled": "cancelled",
}

_AGENCY_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("tribal", ("nation", "tribe", "tribal", "band of", "pueblo", "rancheria")),
    ("federal", ("federal", "u.s.", "united states", "department of defense")),
    ("county", ("county", "parish", "borough")),
    ("city", ("city", "town", "village", "municipal", "township")),
    ("education", ("school", "university", "college", "academy")),
    ("special_district", ("district", "authority", "commission", "port of", "transit")),
    ("state", ("state", "commonwealth")),
)

_DATE_FORMATS = ("%m/%d/%Y", "%m-%d-%Y", "%m/%d/%y", "%m-%d-%y")
_TIME_FORMATS = ("%I:%M %p", "%I:%M%p", "%I:%M:%S %p", "%H:%M", "%H:%M:%S")
_LONG_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%B %d %Y", "%b %d %Y")


def clean_text(value: Any) -> str | None:
    """Collapse whitespace; blank input becomes ``None``."""

    if value is None:
        return None
    cleaned = _WS_PATTERN.sub(" ", str(value)).strip()
    return cleaned or None


def _combine(day: date, raw_time: str | None) -> datetime:
    if raw_time:
        candidate = raw_time.strip().upper()
        for fmt in _TIME_FORMATS:
            try:
                moment = datetime.strptime(candidate, fmt).time()
            except ValueError:
                continue
            return datetime.combine(day, moment, tzinfo=UTC)
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def _parse_iso(text: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        match = _ISO_DATE_PATTERN.search(text)
        if not match:
            return None
        try:
            day = date.fromisoformat(match.group(1))
        except ValueError:
            return None
        return _combine(day, match.group(2))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_numeric(text: str) -> datetime | None:
    match = _US_DATE_PATTERN.search(text)
    if not match:
        return None
    for fmt in _DATE_FORMATS:
        try:
            day = datetime.strptime(match.group(1), fmt).date()
        except ValueError:
            continue
        return _combine(day, match.group(2))
    return None


def _parse_long(text: str) -> datetime | None:
    match = _LONG_DATE_PATTERN.search(text)
    if not match:
        return None
    raw = _WS_PATTERN.sub(" ", match.group(1).replace(".", ""))
    if raw.lower().startswith("sept"):
        raw = "Sep" + raw[4:]
    for fmt in _LONG_FORMATS:
        try:
            day = datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
        return _combine(day, match.group(2))
    return None


def parse_flexible_date(value: str | None) -> datetime | None:
    """Parse ISO, ``MM/DD/YYYY`` and ``Jan 15, 2024`` style dates.

    Time-of-day suffixes such as ``@ 05:00 PM ET`` are honoured; the zone
    abbreviation is dropped and the result is treated as UTC. Returns ``None``
    when nothing parses.
    """

    text = clean_text(value)
    if text is None:
        return None
    text = _TZ_SUFFIX_PATTERN.sub("", _TIME_SUFFIX_PATTERN.sub(" ", text))
    for parser in (_parse_iso, _parse_numeric, _parse_long):
        parsed = parser(text)
        if parsed is not None:
            return parsed
    return None


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_monetary_value(value: str | None) -> int | None:
    """First amount in the text, with K/M/B suffixes applied, rounded half up."""

    text = clean_text(value)
    if text is None:
        return None
    match = _MONEY_PATTERN.search(text)
    if not match:
        return None
    try:
        amount = Decimal(match.group(1).replace(",", ""))
    except InvalidOperation:
        return None
    suffix = (match.group(2) or "").lower()
    amount *= _MULTIPLIERS.get(suffix, 1)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_status(value: str | None) -> str:
    cleaned = clean_text(value)
    if cleaned is None:
        return "unknown"
    return STATUS_SYNONYMS.get(cleaned.lower(), cleaned)


def normalize_email(value: str | None) -> str | None:
    cleaned = clean_text(value)
    if cleaned is None:
        return None
    if cleaned.lower().startswith("mailto:"):
        cleaned = cleaned[len("mailto:"):]
    cleaned = cleaned.split("?", 1)[0].strip().lower()
    return cleaned if _EMAIL_PATTERN.match(cleaned) else None


def normalize_phone(value: str | None) -> str | None:
    """US numbers only: ``(XXX) XXX-XXXX``."""

    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def extract_file_extension(file_name: str | None) -> str:
    if not file_name:
        return "unknown"
    base = file_name.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    base = base.rsplit("/", 1)[-1]
    if "." not in base:
        return "unknown"
    extension = base.rsplit(".", 1)[-1].lower()
    return extension if _EXTENSION_PATTERN.match(extension) else "unknown"


def normalize_agency_type(name: str | None) -> str | None:
    lowered = (clean_text(name) or "").lower()
    if not lowered:
        return None
    for agency_type, keywords in _AGENCY_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return agency_type
    return None
