from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .entry import DriverRecord, FileContribution, RawEntry
from .parser import ParsedFile


logger = logging.getLogger(__name__)


def driver_key(entry: RawEntry, row_index: int) -> str:
    """Identity key used to fold the same driver across files.

    Drivers are matched on their name, ignoring case and surrounding
    whitespace. Rows without a name fall back to the car number within its
    class, and rows with neither get a key of their own so they never collide.
    """

    if entry.driver and entry.driver.strip():
        return "driver:" + entry.driver.strip().casefold()
    if entry.number and entry.number.strip():
        class_name = (entry.class_name or "").strip().casefold()
        return f"car:{class_name}:{entry.number.strip().casefold()}"
    return f"row:{entry.source}:{row_index}"


def consolidate_drivers(files: Sequence[ParsedFile]) -> List[DriverRecord]:
    """Merge every file's entries into one record per driver.

    Always a full pass over ``files``; nothing is carried over from an
    earlier call. Drivers come back in first-seen order.
    """

    drivers: Dict[str, DriverRecord] = {}
    for parsed in files:
        for row_index, entry in enumerate(parsed.entries):
            key = driver_key(entry, row_index)
            record = drivers.get(key)
            if record is None:
                record = DriverRecord(
                    key=key,
                    name=(entry.driver or "").strip(),
                    number=(entry.number or "").strip(),
                    class_name=(entry.class_name or "").strip(),
                )
                drivers[key] = record
            else:
                if not record.number and entry.number:
                    record.number = entry.number.strip()
                if not record.class_name and entry.class_name:
                    record.class_name = entry.class_name.strip()

            record.contributions.append(
                FileContribution(
                    source=entry.source,
                    class_name=entry.class_name,
                    best_time=entry.best_time,
                    second_best=entry.second_best,
                    speed=entry.speed,
                    second_speed=entry.second_speed,
                    points=_to_float(entry.points),
                    position=_to_int(entry.position),
                    position_in_class=_to_int(entry.position_in_class),
                )
            )

    for record in drivers.values():
        record.calculate_aggregates()

    logger.info("Consolidated %d drivers from %d files", len(drivers), len(files))
    return list(drivers.values())


def validate_drivers(drivers: Sequence[DriverRecord]) -> List[str]:
    """Human-readable problems with a consolidated roster; empty when clean."""

    if not drivers:
        return ["No driver data found"]

    errors: List[str] = []
    incomplete = [driver for driver in drivers if not driver.name or not driver.number or not driver.class_name]
    if incomplete:
        errors.append(f"{len(incomplete)} drivers missing required fields (name, number, or class)")

    # Same car number on two different drivers within one class.
    numbers: Dict[Tuple[str, str], List[str]] = {}
    for driver in drivers:
        if driver.name and driver.number:
            numbers.setdefault((driver.class_name, driver.number), []).append(driver.name)
    duplicates = [
        f"#{number} ({' / '.join(names)})" for (_, number), names in numbers.items() if len(names) > 1
    ]
    if duplicates:
        errors.append(f"Duplicate car numbers found: {', '.join(duplicates)}")

    return errors


def _to_float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        logger.debug("Ignoring non-numeric value %r", value)
        return None
    return number if math.isfinite(number) else None


def _to_int(value: Optional[str]) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None
