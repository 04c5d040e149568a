from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Any, Optional
from zoneinfo import ZoneInfo

from .config import settings

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@lru_cache(maxsize=8)
def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def report_zone() -> tzinfo:
    return _zone(settings.report_tz)


def parse_instant(raw: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """
    Accepts ISO-8601 strings, date-only strings, datetimes and epoch milliseconds.
    Naive values are read in `tz` (the report zone by default). Returns None when
    the value is absent or cannot be read.
    """
    tz = tz or report_zone()
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=tz)
    if isinstance(raw, date):
        return datetime.combine(raw, time.min, tzinfo=tz)
    if isinstance(raw, (int, float)):
        try:
            return EPOCH + timedelta(milliseconds=raw)
        except (OverflowError, ValueError):
            # NaN and out-of-range values read as "no event time".
            return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lstrip("-").isdigit():
        try:
            ms = int(s)
        except ValueError:
            return None
        return parse_instant(ms, tz)
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=tz)


def event_time(sale: dict, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    raw = sale.get("created_at") or sale.get("timestamp")
    return parse_instant(raw, tz)


def event_sort_key(sale: dict, tz: Optional[tzinfo] = None) -> datetime:
    return event_time(sale, tz) or EPOCH


def day_key(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    return dt.astimezone(tz or report_zone()).date().isoformat()


def local_midnight(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    local = now.astimezone(tz or report_zone())
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def day_start(d: date, tz: Optional[tzinfo] = None) -> datetime:
    return datetime.combine(d, time.min, tzinfo=tz or report_zone())


def day_end(d: date, tz: Optional[tzinfo] = None) -> datetime:
    return datetime.combine(d, time.max, tzinfo=tz or report_zone())


def _is_date_only(raw: str) -> bool:
    return len(raw) == 10 and raw[4] == "-" and raw[7] == "-"


def parse_range_start(raw: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    s = (raw or "").strip()
    if not s:
        return EPOCH
    if _is_date_only(s):
        try:
            return day_start(date.fromisoformat(s), tz)
        except ValueError:
            return None
    return parse_instant(s, tz)


def parse_range_end(raw: Optional[str], now: datetime, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    # An end date covers the whole of that calendar day.
    s = (raw or "").strip()
    if not s:
        return now
    if _is_date_only(s):
        try:
            return day_end(date.fromisoformat(s), tz)
        except ValueError:
            return None
    return parse_instant(s, tz)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
