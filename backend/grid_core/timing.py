from __future__ import annotations

import math
import re
from typing import Any

# Unparseable or missing times sort after every real lap.
INFINITE_TIME = 999999.0

_SENTINELS = {"", "DNF", "DNS", "DQ", "DSQ", "-"}
_SPLIT = re.compile(r"[:.]")


def parse_time_to_seconds(value: Any) -> float:
    """Convert a lap time to seconds.

    Accepts plain seconds (``83.456``), ``SS.mmm``, ``MM:SS.mmm`` and
    ``MM:SS:mmm``. A millisecond part shorter than three digits is right
    padded, so ``1:23.4`` is 83.4 seconds. Anything else, including DNF/DNS
    markers, returns :data:`INFINITE_TIME`.
    """

    if value is None or isinstance(value, bool):
        return INFINITE_TIME

    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) and value >= 0 else INFINITE_TIME

    clean = str(value).strip()
    if clean.upper() in _SENTINELS:
        return INFINITE_TIME

    try:
        direct = float(clean)
    except ValueError:
        pass
    else:
        return direct if math.isfinite(direct) and direct >= 0 else INFINITE_TIME

    parts = [part for part in _SPLIT.split(clean) if part]
    if not parts or not all(part.isdigit() for part in parts):
        return INFINITE_TIME

    if len(parts) == 3:
        minutes, seconds, millis = parts
        return int(minutes) * 60 + int(seconds) + _millis(millis) / 1000
    if len(parts) == 2:
        seconds, millis = parts
        return int(seconds) + _millis(millis) / 1000

    return INFINITE_TIME


def _millis(raw: str) -> int:
    return int(raw.ljust(3, "0")[:3])


def is_valid_time(value: Any) -> bool:
    return parse_time_to_seconds(value) < INFINITE_TIME
