from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .entry import DriverRecord
from .timing import INFINITE_TIME


class StartType(str, Enum):
    FLYING = "flying"
    STANDING = "standing"


class SortBy(str, Enum):
    POSITION = "position"
    BEST_TIME = "bestTime"
    SECOND_BEST = "secondBest"
    BEST_SECOND_BEST = "bestSecondBest"
    POINTS_TOTAL = "pointsTotal"
    POINTS_AVERAGE = "pointsAverage"

    @property
    def points_based(self) -> bool:
        return self in (SortBy.POINTS_TOTAL, SortBy.POINTS_AVERAGE)


class TieBreaker(str, Enum):
    BEST_TIME = "bestTime"
    SECOND_BEST = "secondBest"
    BEST_POSITION_IN_CLASS = "bestPositionInClass"
    BEST_POSITION = "bestPosition"
    ALPHABETICAL = "alphabetical"
    MANUAL = "manual"


class GridOrder(str, Enum):
    STRAIGHT = "straight"
    FASTEST_FIRST = "fastestFirst"
    SLOWEST_FIRST = "slowestFirst"


MAX_TIE_BREAKERS = 3
DEFAULT_TIE_BREAKERS = (TieBreaker.BEST_TIME, TieBreaker.BEST_POSITION_IN_CLASS, TieBreaker.ALPHABETICAL)

SORT_LABELS = {
    SortBy.POSITION: "Finishing Position",
    SortBy.BEST_TIME: "Best Overall Time",
    SortBy.SECOND_BEST: "Second Best Overall Time",
    SortBy.BEST_SECOND_BEST: "Best Second-Best Time",
    SortBy.POINTS_TOTAL: "Total Points",
    SortBy.POINTS_AVERAGE: "Average Points",
}

ORDER_LABELS = {
    GridOrder.STRAIGHT: "straight up",
    GridOrder.FASTEST_FIRST: "fastest class first",
    GridOrder.SLOWEST_FIRST: "slowest class first",
}


@dataclass(frozen=True)
class WaveConfig:
    """Settings for one wave of the grid.

    Frozen so a built grid can hold its configuration without anyone
    changing it underneath; use :func:`update_wave` to derive a new one.
    """

    wave_number: int  # 1-based and contiguous
    start_type: StartType = StartType.FLYING
    classes: Tuple[str, ...] = ()
    sort_by: SortBy = SortBy.BEST_TIME
    tie_breakers: Tuple[TieBreaker, ...] = DEFAULT_TIE_BREAKERS
    grid_order: GridOrder = GridOrder.STRAIGHT
    inverted: bool = False
    invert_all: bool = False
    invert_count: int = 2
    empty_positions: int = 0  # Spacing left after the wave

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_type", StartType(self.start_type))
        object.__setattr__(self, "sort_by", SortBy(self.sort_by))
        object.__setattr__(self, "grid_order", GridOrder(self.grid_order))
        object.__setattr__(self, "classes", tuple(self.classes))
        object.__setattr__(self, "tie_breakers", tuple(TieBreaker(item) for item in self.tie_breakers))

        if len(self.tie_breakers) > MAX_TIE_BREAKERS:
            raise ValueError(f"at most {MAX_TIE_BREAKERS} tie-breakers can be configured")
        if self.invert_count < 0:
            raise ValueError("invert count cannot be negative")
        if self.empty_positions < 0:
            raise ValueError("empty positions cannot be negative")
        if len(set(self.classes)) != len(self.classes):
            raise ValueError(f"wave {self.wave_number} lists a class more than once")

    @property
    def group_by_class(self) -> bool:
        return self.grid_order is not GridOrder.STRAIGHT


def initialize_wave_configs(
    wave_count: int,
    default_wave_spacing: int = 0,
    default_sort: SortBy = SortBy.BEST_TIME,
) -> List[WaveConfig]:
    if wave_count < 1:
        raise ValueError("at least one wave is required")

    return [
        WaveConfig(
            wave_number=index + 1,
            sort_by=default_sort,
            empty_positions=default_wave_spacing if index < wave_count - 1 else 0,
        )
        for index in range(wave_count)
    ]


def default_sort_option(file_count: int, has_position_data: bool) -> SortBy:
    """Finishing position only makes sense for a single results file."""

    if file_count == 1 and has_position_data:
        return SortBy.POSITION
    return SortBy.BEST_TIME


def assigned_classes(configs: Sequence[WaveConfig], exclude_index: Optional[int] = None) -> Set[str]:
    assigned: Set[str] = set()
    for index, config in enumerate(configs):
        if index != exclude_index:
            assigned.update(config.classes)
    return assigned


def validate_partition(configs: Sequence[WaveConfig]) -> None:
    owners: Dict[str, int] = {}
    for config in configs:
        for class_name in config.classes:
            if class_name in owners:
                raise ValueError(
                    f"class '{class_name}' is already assigned to wave {owners[class_name]}"
                )
            owners[class_name] = config.wave_number


def update_wave(configs: Sequence[WaveConfig], index: int, **changes: Any) -> List[WaveConfig]:
    """Return a new config list with wave ``index`` changed.

    Enforces the cross-wave rules: a class belongs to at most one wave, and
    once a wave starts standing every later wave does too.
    """

    if not 0 <= index < len(configs):
        raise ValueError(f"unknown wave {index + 1}")
    if "wave_number" in changes:
        raise ValueError("wave numbers are fixed")

    updated = list(configs)
    updated[index] = replace(updated[index], **changes)

    start_type = updated[index].start_type
    if start_type is StartType.FLYING and any(c.start_type is StartType.STANDING for c in updated[:index]):
        raise ValueError(f"wave {index + 1} cannot be flying after a standing start wave")
    if start_type is StartType.STANDING:
        for later in range(index + 1, len(updated)):
            updated[later] = replace(updated[later], start_type=StartType.STANDING)

    validate_partition(updated)
    return updated


def assign_class(configs: Sequence[WaveConfig], index: int, class_name: str) -> List[WaveConfig]:
    if not 0 <= index < len(configs):
        raise ValueError(f"unknown wave {index + 1}")
    if class_name in configs[index].classes:
        return list(configs)
    return update_wave(configs, index, classes=configs[index].classes + (class_name,))


def unassign_class(configs: Sequence[WaveConfig], index: int, class_name: str) -> List[WaveConfig]:
    if not 0 <= index < len(configs):
        raise ValueError(f"unknown wave {index + 1}")
    remaining = tuple(name for name in configs[index].classes if name != class_name)
    return update_wave(configs, index, classes=remaining)


def assign_all_unassigned(
    configs: Sequence[WaveConfig], index: int, available: Iterable[str]
) -> List[WaveConfig]:
    """Give wave ``index`` every class no other wave has claimed."""

    if not 0 <= index < len(configs):
        raise ValueError(f"unknown wave {index + 1}")
    taken = assigned_classes(configs)
    extra = tuple(name for name in available if name not in taken)
    return update_wave(configs, index, classes=configs[index].classes + extra)


def extract_classes(drivers: Iterable[DriverRecord]) -> List[str]:
    return sorted({driver.class_name for driver in drivers if driver.class_name})


def car_counts_by_class(drivers: Iterable[DriverRecord]) -> Dict[str, int]:
    return dict(Counter(driver.class_name for driver in drivers if driver.class_name))


def car_count_in_wave(config: WaveConfig, drivers: Iterable[DriverRecord]) -> int:
    return sum(1 for driver in drivers if driver.class_name in config.classes)


def available_sort_options(drivers: Sequence[DriverRecord]) -> List[SortBy]:
    """Sort criteria the uploaded data can actually support."""

    options: List[SortBy] = []
    if any(driver.best_position is not None for driver in drivers):
        options.append(SortBy.POSITION)
    if any(driver.best_overall_time is not None for driver in drivers):
        options.append(SortBy.BEST_TIME)
    if any(driver.second_best_overall_time is not None for driver in drivers):
        options.append(SortBy.SECOND_BEST)
    if any(driver.best_second_best_seconds() < INFINITE_TIME for driver in drivers):
        options.append(SortBy.BEST_SECOND_BEST)
    if any(driver.has_points and driver.total_points > 0 for driver in drivers):
        options.extend([SortBy.POINTS_TOTAL, SortBy.POINTS_AVERAGE])
    return options


def available_tie_breakers(drivers: Sequence[DriverRecord]) -> List[TieBreaker]:
    options: List[TieBreaker] = []
    if any(driver.best_overall_time is not None for driver in drivers):
        options.append(TieBreaker.BEST_TIME)
    if any(driver.second_best_overall_time is not None for driver in drivers):
        options.append(TieBreaker.SECOND_BEST)
    if any(driver.best_position_in_class is not None for driver in drivers):
        options.append(TieBreaker.BEST_POSITION_IN_CLASS)
    if any(driver.best_position is not None for driver in drivers):
        options.append(TieBreaker.BEST_POSITION)
    options.extend([TieBreaker.ALPHABETICAL, TieBreaker.MANUAL])
    return options


def describe_wave(config: WaveConfig) -> str:
    parts = [f"Sorted by {SORT_LABELS[config.sort_by]}", ORDER_LABELS[config.grid_order]]
    if config.inverted:
        parts.append("entire grid inverted" if config.invert_all else f"top {config.invert_count} positions inverted")
    if config.classes:
        parts.append(f"Classes: {', '.join(config.classes)}")
    return " • ".join(parts)
