"""
Timestamp convention shared by every table.

The hosted tables store the wall-clock time of the app's fixed-offset zone and
label it UTC (``...Z``), so the dashboard shows local numbers. This module is
the only place that knows about it: ``encode_timestamp`` on the way out,
``decode_timestamp`` on the way in. Everything else in the app handles aware
UTC datetimes.
"""
from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class DayRange:
    start: dt.datetime  # inclusive, UTC
    end: dt.datetime    # exclusive, UTC

    def __contains__(self, instant: dt.datetime) -> bool:
        return self.start <= instant < self.end


def app_zone(offset_hours: int) -> dt.timezone:
    return dt.timezone(dt.timedelta(hours=offset_hours))


def as_utc(instant: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to be UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=dt.timezone.utc)
    return instant.astimezone(dt.timezone.utc)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def encode_timestamp(instant: dt.datetime, offset_hours: int) -> str:
    local = as_utc(instant).astimezone(app_zone(offset_hours))
    return local.strftime("%Y-%m-%dT%H:%M:%S") + f".{local.microsecond // 1000:03d}Z"


def _parse_wall_time(raw: str) -> dt.datetime:
    s = raw.strip().replace(" ", "T", 1)
    if s.endswith(("Z", "z")):
        s = s[:-1]
    # drop any explicit offset; only the wall-clock digits carry meaning
    s = re.sub(r"[+-]\d{2}:?\d{2}$", "", s)
    # fromisoformat wants exactly 3 or 6 fractional digits on older Pythons
    s = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s)
    return dt.datetime.fromisoformat(s)


def decode_timestamp(
    raw: Union[str, dt.datetime, None],
    offset_hours: int,
    default: Optional[dt.datetime] = None,
) -> Optional[dt.datetime]:
    """
    Turn a stored timestamp back into an aware UTC instant.

    Missing values resolve to ``default`` (callers pass "now"); so do values
    that cannot be parsed, with a warning.
    """
    if raw is None or raw == "":
        return default
    if isinstance(raw, dt.datetime):
        wall = raw.replace(tzinfo=None)
    else:
        try:
            wall = _parse_wall_time(str(raw))
        except ValueError:
            logger.warning("Unparseable timestamp %r; using default", raw)
            return default
    return wall.replace(tzinfo=app_zone(offset_hours)).astimezone(dt.timezone.utc)


def local_date(instant: dt.datetime, offset_hours: int) -> dt.date:
    return as_utc(instant).astimezone(app_zone(offset_hours)).date()


def day_range(now: dt.datetime, offset_hours: int) -> DayRange:
    """Bounds of the local calendar day that contains ``now``."""
    zone = app_zone(offset_hours)
    day = local_date(now, offset_hours)
    start = dt.datetime.combine(day, dt.time(0, 0), tzinfo=zone)
    end = start + dt.timedelta(days=1)
    return DayRange(start.astimezone(dt.timezone.utc), end.astimezone(dt.timezone.utc))


def local_noon(day: dt.date, offset_hours: int) -> dt.datetime:
    noon = dt.datetime.combine(day, dt.time(12, 0), tzinfo=app_zone(offset_hours))
    return noon.astimezone(dt.timezone.utc)
