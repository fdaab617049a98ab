from __future__ import annotations

from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from .entry import RawEntry

# Column names seen in the timing exports we support, most specific first.
FIELD_VARIATIONS: Dict[str, Tuple[str, ...]] = {
    "class_name": ("Class", "class", "CLASS", "Класс"),
    "number": ("No.", "Number", "CarNumber", "Car", "#", "Num"),
    "driver": ("Name", "Driver", "DriverName", "Pilot"),
    "position": ("Pos", "Position", "Finish", "Place", "P"),
    "best_time": ("Best Tm", "BestTime", "Best Time", "FastLap", "Best", "Time"),
    "second_best": ("2nd Best", "SecondBest", "Second Best", "Time2", "2nd"),
    "points": ("Points", "Pts", "Score"),
    "position_in_class": ("PIC", "Pos in Class", "Position in Class", "Class Position", "ClassPos"),
    "speed": ("Speed", "Best Speed"),
    "second_speed": ("SecondSpeed", "2nd Speed"),
}

# Optional columns and the label used when a file lacks them.
OPTIONAL_FIELD_LABELS: Dict[str, str] = {
    "best_time": "Best Time",
    "second_best": "2nd Best Time",
    "points": "Points",
    "position": "Position",
    "position_in_class": "Position in Class (PIC)",
}


def normalize_field(row: Mapping[str, Any], field_name: str) -> Optional[str]:
    """Return the first populated variant of ``field_name`` in ``row``.

    Blank values are skipped so a later variant can still supply the field.
    ``None`` is returned when no variant carries data, which keeps "column
    missing" distinct from a genuine zero.
    """

    for variation in FIELD_VARIATIONS[field_name]:
        value = row.get(variation)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize_row(row: Mapping[str, Any], source: str) -> RawEntry:
    return RawEntry(source=source, **{name: normalize_field(row, name) for name in FIELD_VARIATIONS})


def fields_present(headers: Iterable[str]) -> FrozenSet[str]:
    """Canonical fields that at least one header in ``headers`` maps onto."""

    header_set = {header.strip() for header in headers if header}
    return frozenset(
        name for name, variations in FIELD_VARIATIONS.items() if header_set.intersection(variations)
    )
