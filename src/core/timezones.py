"""
Wall-time normalization between naive local timestamps and UTC instants.

No offset table lives here: the platform zone formatter (zoneinfo) is asked
what the wall clock reads at a candidate instant, and the candidate is
corrected until the reading matches the requested wall time.
"""

import re
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import InvalidTimestamp, UnknownTimezone

UTC = timezone.utc

NAIVE_LOCAL_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})(?::(\d{2}))?$")
SUFFIXED_INSTANT_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?(?:Z|[+-]\d{2}:\d{2})$"
)

NAIVE_FORMAT = "%Y-%m-%dT%H:%M"
WIRE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def get_zone(zone: str) -> ZoneInfo:
    """Look up a zone, failing closed instead of defaulting to UTC."""
    if not zone or not isinstance(zone, str):
        raise UnknownTimezone(zone)
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise UnknownTimezone(zone) from e


def is_naive_local(value) -> bool:
    """True for 'YYYY-MM-DDTHH:mm[:ss]' strings with no zone suffix."""
    return isinstance(value, str) and bool(NAIVE_LOCAL_RE.match(value.strip()))


def is_suffixed_instant(value) -> bool:
    return isinstance(value, str) and bool(SUFFIXED_INSTANT_RE.match(value.strip()))


def parse_instant(value: str) -> datetime:
    """Parse a string that already carries 'Z' or an explicit offset."""
    text = value.strip()
    if not SUFFIXED_INSTANT_RE.match(text):
        raise InvalidTimestamp(value, "expected a trailing 'Z' or UTC offset")
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidTimestamp(value, "not a real calendar date") from e
    return parsed.astimezone(UTC)


def _wall_clock(instant: datetime, tz: ZoneInfo) -> datetime:
    """Naive wall-clock fields of `instant` as read in `tz`."""
    return instant.astimezone(tz).replace(tzinfo=None)


def _offset_at(instant: datetime, tz: ZoneInfo) -> timedelta:
    return _wall_clock(instant, tz) - instant.replace(tzinfo=None)


def _resolve_wall_time(naive: datetime, tz: ZoneInfo, original, strict: bool = True) -> datetime:
    """
    Two-pass fixed point from a naive wall time to a UTC instant.

    Pass 1 reads the zone offset at the naive fields taken as UTC, pass 2
    reads it again at the corrected candidate. The candidate whose wall clock
    matches the input wins. When neither matches the wall time falls inside
    a DST gap: strict mode rejects it, non-strict returns the later of the
    two candidates, which lies just past the gap.
    """
    try:
        as_utc = naive.replace(tzinfo=UTC)
        first = as_utc - _offset_at(as_utc, tz)
        if _wall_clock(first, tz) == naive:
            return first
        second = as_utc - _offset_at(first, tz)
        if _wall_clock(second, tz) == naive:
            return second
    except OverflowError as e:
        raise InvalidTimestamp(original, "out of representable range") from e

    if strict:
        raise InvalidTimestamp(
            original, f"does not exist in {tz.key} (skipped by a DST transition)"
        )
    return max(first, second)


def to_instant(value, zone: str) -> datetime:
    """
    Convert a naive local timestamp entered in `zone` to a UTC instant.

    Strings that already end in 'Z' or an offset are absolute and pass
    through untouched (apart from being expressed in UTC). Aware datetimes
    pass through the same way; naive datetimes are read as wall time.

    Raises:
        InvalidTimestamp: malformed input, impossible date, or a wall time
            skipped by a DST transition.
        UnknownTimezone: `zone` is not a recognised zone identifier.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(UTC)
        return _resolve_wall_time(value.replace(microsecond=0), get_zone(zone), value)

    if not isinstance(value, str):
        raise InvalidTimestamp(value, "expected a string")

    text = value.strip()
    if SUFFIXED_INSTANT_RE.match(text):
        return parse_instant(text)

    match = NAIVE_LOCAL_RE.match(text)
    if not match:
        raise InvalidTimestamp(value)

    year, month, day, hour, minute, second = match.groups()
    try:
        naive = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second or 0)
        )
    except ValueError as e:
        raise InvalidTimestamp(value, "not a real calendar date") from e

    return _resolve_wall_time(naive, get_zone(zone), value)


def to_local_naive(instant: datetime, zone: str) -> str:
    """Inverse of to_instant: the 'YYYY-MM-DDTHH:mm' wall time in `zone`."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(get_zone(zone)).strftime(NAIVE_FORMAT)


def format_instant(instant: datetime) -> str:
    """Upstream wire format, always UTC with a 'Z' suffix."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC).strftime(WIRE_FORMAT)


def day_range(start_date: date, end_date: date, zone: str) -> tuple[datetime, datetime]:
    """
    Inclusive local date range as a half-open [start, end) pair of instants.

    A midnight skipped by DST is pushed forward to the first valid minute.
    """
    if end_date < start_date:
        raise ValueError(f"end_date {end_date} is before start_date {start_date}")
    tz = get_zone(zone)
    start_naive = datetime.combine(start_date, datetime.min.time())
    end_naive = datetime.combine(end_date + timedelta(days=1), datetime.min.time())
    return (
        _resolve_wall_time(start_naive, tz, start_naive, strict=False),
        _resolve_wall_time(end_naive, tz, end_naive, strict=False),
    )
