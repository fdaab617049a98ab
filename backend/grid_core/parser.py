from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Union

from .entry import RawEntry
from .fields import OPTIONAL_FIELD_LABELS, fields_present, normalize_row
from .timing import INFINITE_TIME, parse_time_to_seconds


logger = logging.getLogger(__name__)

RESULTS = "results"
LAPTIMES = "laptimes"

LAPTIMES_MARKERS = ("Time of Day", "Lap Tm")
_DELIMITERS = ",;\t"


class FileParseError(ValueError):
    """Raised when an uploaded file cannot be used at all."""

    def __init__(self, file_name: str, message: str) -> None:
        super().__init__(message)
        self.file_name = file_name


@dataclass
class ParsedFile:
    file_name: str
    kind: str
    entries: List[RawEntry] = field(default_factory=list)
    fields: FrozenSet[str] = frozenset()
    warnings: List[str] = field(default_factory=list)


def parse_file(content: Union[str, bytes], file_name: str) -> ParsedFile:
    """Parse an uploaded export into raw entries.

    Lap-by-driver logs are recognised by their header line; everything else
    is read as a tabular results export. Any problem rejects the whole file
    so a half-read export never reaches the roster.
    """

    text = _decode(content, file_name)
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        raise FileParseError(file_name, f"No valid data found in {file_name}. Please check the file format.")

    if all(marker in lines[0] for marker in LAPTIMES_MARKERS):
        parsed = parse_laptimes(lines, file_name)
    else:
        parsed = parse_results(lines, file_name)

    parsed.warnings = [
        f"Missing {label} column" for name, label in OPTIONAL_FIELD_LABELS.items() if name not in parsed.fields
    ]
    logger.info("Parsed %s as %s export with %d entries", file_name, parsed.kind, len(parsed.entries))
    return parsed


def _decode(content: Union[str, bytes], file_name: str) -> str:
    if isinstance(content, bytes):
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise FileParseError(file_name, f"Failed to read {file_name}. Please ensure it's a valid file.") from exc
    return content.lstrip("\ufeff")


def parse_results(lines: Sequence[str], file_name: str) -> ParsedFile:
    try:
        delimiter = csv.Sniffer().sniff(lines[0], delimiters=_DELIMITERS).delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.DictReader(io.StringIO("\n".join(lines)), delimiter=delimiter)
    entries: List[RawEntry] = []
    try:
        headers = [(name or "").strip() for name in reader.fieldnames or []]
        reader.fieldnames = headers
        present = fields_present(headers)
        if "class_name" not in present or not present.intersection({"driver", "number"}):
            raise FileParseError(
                file_name,
                f"{file_name} does not contain expected racing data columns "
                "(Class plus Driver or Number). Please verify the file format.",
            )

        for row in reader:
            if None in row:
                raise FileParseError(
                    file_name,
                    f"Error parsing {file_name}: line {reader.line_num} has more values than the header",
                )
            if not any((value or "").strip() for value in row.values()):
                continue
            entries.append(normalize_row(row, file_name))
    except csv.Error as exc:
        raise FileParseError(file_name, f"Error parsing {file_name}: {exc}") from exc

    if not entries:
        raise FileParseError(file_name, f"No valid data found in {file_name}. Please check the file format.")

    return ParsedFile(file_name=file_name, kind=RESULTS, entries=entries, fields=present)


@dataclass
class _DriverLaps:
    number: str
    name: str
    class_name: str
    best_time: Optional[str] = None
    best_speed: Optional[str] = None
    best_seconds: float = INFINITE_TIME
    second_time: Optional[str] = None
    second_speed: Optional[str] = None
    second_seconds: float = INFINITE_TIME

    def record(self, lap_time: str, speed: Optional[str]) -> None:
        seconds = parse_time_to_seconds(lap_time)
        if seconds >= INFINITE_TIME:
            return
        if seconds < self.best_seconds:
            self.second_time, self.second_speed, self.second_seconds = (
                self.best_time,
                self.best_speed,
                self.best_seconds,
            )
            self.best_time, self.best_speed, self.best_seconds = lap_time, speed, seconds
        elif seconds < self.second_seconds:
            self.second_time, self.second_speed, self.second_seconds = lap_time, speed, seconds

    def to_entry(self, source: str) -> RawEntry:
        return RawEntry(
            source=source,
            class_name=self.class_name or None,
            number=self.number or None,
            driver=self.name or None,
            best_time=self.best_time,
            speed=self.best_speed or None,
            second_best=self.second_time,
            second_speed=self.second_speed or None,
        )


def parse_laptimes(lines: Sequence[str], file_name: str) -> ParsedFile:
    """Distil a lap-by-driver log into best and second-best laps per driver.

    A ``Number - Name - Class`` line opens each driver's block; the lap rows
    that follow are CSV. Only the two fastest laps survive.
    """

    header = next(csv.reader([lines[0]]))
    columns = [cell.strip() for cell in header]
    lap_index = columns.index("Lap Tm") if "Lap Tm" in columns else 2
    speed_index = columns.index("Speed") if "Speed" in columns else 3

    drivers: List[_DriverLaps] = []
    current: Optional[_DriverLaps] = None
    for line_number, line in enumerate(lines[1:], start=2):
        stripped = line.strip()
        if " - " in stripped and not stripped.startswith('"'):
            parts = [part.strip() for part in stripped.split(" - ")]
            if len(parts) >= 3:
                current = _DriverLaps(number=parts[0], name=" - ".join(parts[1:-1]), class_name=parts[-1])
                drivers.append(current)
            continue
        if current is None:
            continue

        try:
            cells = next(csv.reader([stripped]))
        except csv.Error:
            logger.warning("Skipping unreadable lap row %d in %s", line_number, file_name)
            continue
        if len(cells) <= lap_index:
            continue
        lap_time = cells[lap_index].strip()
        if not lap_time or lap_time == "Lap Tm":
            continue
        speed = cells[speed_index].strip() if len(cells) > speed_index else None
        current.record(lap_time, speed)

    entries = [driver.to_entry(file_name) for driver in drivers if driver.best_time]
    if not entries:
        raise FileParseError(file_name, f"No lap times found in {file_name}. Please check the file format.")

    present = {"class_name", "number", "driver", "best_time"}
    if any(entry.speed for entry in entries):
        present.add("speed")
    if any(entry.second_best for entry in entries):
        present.add("second_best")
    if any(entry.second_speed for entry in entries):
        present.add("second_speed")

    return ParsedFile(file_name=file_name, kind=LAPTIMES, entries=entries, fields=frozenset(present))
