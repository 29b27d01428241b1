"""Unit conversions shared by the WHOOP and Withings parsers."""

from __future__ import annotations

import math
from datetime import datetime, timezone

KCAL_PER_KJ = 0.239


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves up (2.5 -> 3); round() would go to the even neighbour."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def kilojoules_to_calories(kj: float) -> int:
    return int(round_half_up(kj * KCAL_PER_KJ))


def parse_iso(ts: str) -> datetime:
    """Parse an upstream ISO-8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(ts.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def duration_minutes(start: str, end: str) -> int:
    delta_ms = (parse_iso(end) - parse_iso(start)).total_seconds() * 1000
    return int(round_half_up(delta_ms / 60000))


def decode_measure(value: int, unit: int) -> float:
    """Withings sends value * 10**unit as an integer pair; returns the real value to 2 decimals."""
    return round_half_up(value * (10 ** unit), 2)


def iso_z(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing Z, e.g. 2024-01-01T00:00:00.000Z."""
    u = dt.astimezone(timezone.utc)
    return u.strftime("%Y-%m-%dT%H:%M:%S.") + f"{u.microsecond // 1000:03d}Z"


def epoch_seconds(dt: datetime) -> int:
    return int(dt.timestamp())


def from_epoch_seconds(ts: int) -> str:
    return iso_z(datetime.fromtimestamp(int(ts), tz=timezone.utc))
