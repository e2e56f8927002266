"""
Daily slot grid.

Every instant handled here is a naive UTC ``datetime`` (the storage
representation). The service window itself is defined in the configured
local zone, so a civic date is converted to UTC bounds before slots are cut.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

SLOT_MINUTES = 30
WINDOW_START_HOUR = 9
WINDOW_END_HOUR = 18  # exclusive

TzLike = Union[str, ZoneInfo]


@dataclass(frozen=True)
class Slot:
    start_at: datetime
    end_at: datetime
    duration_min: int


def _zone(tz: TzLike) -> ZoneInfo:
    return tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)


def _local_to_utc(day: date, hour: int, zone: ZoneInfo) -> datetime:
    local = datetime.combine(day, time(hour, 0), tzinfo=zone)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_day(instant: datetime, tz: TzLike = "UTC") -> date:
    """Civic date of a naive UTC instant in the service zone."""
    return instant.replace(tzinfo=timezone.utc).astimezone(_zone(tz)).date()


def day_bounds(day: date, tz: TzLike = "UTC") -> Tuple[datetime, datetime]:
    """Return ``[dayStart, dayNext)`` for a civic date, as naive UTC."""
    zone = _zone(tz)
    return _local_to_utc(day, 0, zone), _local_to_utc(day + timedelta(days=1), 0, zone)


def make_day_window(
    day: date,
    tz: TzLike = "UTC",
    start_hour: int = WINDOW_START_HOUR,
    end_hour: int = WINDOW_END_HOUR,
) -> Tuple[datetime, datetime]:
    zone = _zone(tz)
    return _local_to_utc(day, start_hour, zone), _local_to_utc(day, end_hour, zone)


def generate_slots(
    day: date,
    duration_min: int = SLOT_MINUTES,
    tz: TzLike = "UTC",
    *,
    stride_min: int = SLOT_MINUTES,
    start_hour: int = WINDOW_START_HOUR,
    end_hour: int = WINDOW_END_HOUR,
) -> List[Slot]:
    """
    Cut the service window of ``day`` into candidate slots.

    Slots start on a fixed ``stride_min`` grid whatever the requested
    duration; a slot is kept only when its whole span ends by the window end.
    """
    if duration_min < 1:
        raise ValueError("duration_min must be at least 1")

    window_start, window_end = make_day_window(day, tz, start_hour, end_hour)
    stride = timedelta(minutes=stride_min)
    duration = timedelta(minutes=duration_min)

    slots = []
    t = window_start
    while t + duration <= window_end:
        slots.append(Slot(start_at=t, end_at=t + duration, duration_min=duration_min))
        t += stride
    return slots


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap."""
    return a_start < b_end and b_start < a_end


def clamp_to_window(
    start_at: datetime,
    duration_min: int = SLOT_MINUTES,
    tz: TzLike = "UTC",
    *,
    start_hour: int = WINDOW_START_HOUR,
    end_hour: int = WINDOW_END_HOUR,
) -> Optional[Slot]:
    """Return the slot for ``start_at`` if it sits fully inside its day's window, else None."""
    try:
        window_start, window_end = make_day_window(local_day(start_at, tz), tz, start_hour, end_hour)
        end_at = start_at + timedelta(minutes=duration_min)
    except OverflowError:
        # Window or slot end falls outside the representable calendar
        return None
    if start_at < window_start or end_at > window_end:
        return None
    return Slot(start_at=start_at, end_at=end_at, duration_min=duration_min)


def parse_instant(value: str, tz: TzLike = "UTC") -> datetime:
    """
    Parse an ISO-8601 string into a naive UTC instant.

    Values without an offset are read in the service zone. Sub-second
    precision is dropped. Raises ValueError on malformed input.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("empty instant")
    dt = datetime.fromisoformat(value.strip())
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_zone(tz))
    try:
        return dt.astimezone(timezone.utc).replace(tzinfo=None, microsecond=0)
    except OverflowError as exc:
        raise ValueError(f"instant out of range: {value}") from exc


def parse_day(value: str) -> date:
    """Parse ``YYYY-MM-DD``. Raises ValueError on anything else."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def to_iso(dt: datetime) -> str:
    """ISO-8601 UTC without sub-second precision, e.g. ``2026-10-20T09:00:00Z``."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
