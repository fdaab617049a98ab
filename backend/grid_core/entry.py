from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from .timing import INFINITE_TIME, parse_time_to_seconds


@dataclass
class RawEntry:
    """One input row after header normalisation.

    Values are kept as the strings found in the file; ``None`` means the
    column was absent or blank for this row. Raw entries only live until the
    next consolidation pass.
    """

    source: str  # File the row came from
    class_name: Optional[str] = None
    number: Optional[str] = None
    driver: Optional[str] = None
    position: Optional[str] = None
    best_time: Optional[str] = None
    second_best: Optional[str] = None
    points: Optional[str] = None
    position_in_class: Optional[str] = None
    speed: Optional[str] = None
    second_speed: Optional[str] = None


@dataclass(frozen=True)
class TimeRecord:
    time: str
    seconds: float
    source: str


@dataclass
class FileContribution:
    """What a single file said about a driver."""

    source: str
    class_name: Optional[str] = None
    best_time: Optional[str] = None
    second_best: Optional[str] = None
    speed: Optional[str] = None
    second_speed: Optional[str] = None
    points: Optional[float] = None
    position: Optional[int] = None
    position_in_class: Optional[int] = None


@dataclass
class DriverRecord:
    """Canonical per-driver aggregate across every uploaded file."""

    key: str  # Identity key, unique across the upload set
    name: str
    number: str
    class_name: str
    contributions: List[FileContribution] = field(default_factory=list)

    # Calculated fields
    best_overall_time: Optional[TimeRecord] = None
    second_best_overall_time: Optional[TimeRecord] = None
    total_points: float = 0
    points_count: int = 0
    average_points: float = 0
    best_position: Optional[int] = None
    average_position: Optional[float] = None
    best_position_in_class: Optional[int] = None
    average_position_in_class: Optional[float] = None

    @property
    def file_count(self) -> int:
        return len(self.contributions)

    @property
    def sources(self) -> List[str]:
        seen: List[str] = []
        for contribution in self.contributions:
            if contribution.source not in seen:
                seen.append(contribution.source)
        return seen

    @property
    def has_points(self) -> bool:
        return self.points_count > 0

    def best_second_best_seconds(self) -> float:
        """Fastest second-best lap reported by any single file."""

        times = [parse_time_to_seconds(c.second_best) for c in self.contributions if c.second_best]
        return min(times, default=INFINITE_TIME)

    def calculate_aggregates(self) -> None:
        """Recompute every derived field from the contributions."""

        laps: List[TimeRecord] = []
        for contribution in self.contributions:
            for raw in (contribution.best_time, contribution.second_best):
                if not raw:
                    continue
                seconds = parse_time_to_seconds(raw)
                if seconds < INFINITE_TIME:
                    laps.append(TimeRecord(time=raw, seconds=seconds, source=contribution.source))
        laps.sort(key=lambda lap: lap.seconds)

        self.best_overall_time = laps[0] if laps else None
        self.second_best_overall_time = None
        if self.best_overall_time is not None:
            for lap in laps[1:]:
                if lap.seconds > self.best_overall_time.seconds:
                    self.second_best_overall_time = lap
                    break

        points = [c.points for c in self.contributions if c.points is not None]
        self.points_count = len(points)
        self.total_points = sum(points)
        self.average_points = self.total_points / self.points_count if self.points_count else 0

        positions = [c.position for c in self.contributions if c.position is not None]
        self.best_position = min(positions) if positions else None
        self.average_position = round(sum(positions) / len(positions), 2) if positions else None

        in_class = [c.position_in_class for c in self.contributions if c.position_in_class is not None]
        self.best_position_in_class = min(in_class) if in_class else None
        self.average_position_in_class = round(sum(in_class) / len(in_class), 2) if in_class else None
