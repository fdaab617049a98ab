from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .entry import DriverRecord
from .timing import INFINITE_TIME
from .waves import GridOrder, SortBy, TieBreaker, WaveConfig


logger = logging.getLogger(__name__)


class GridBuildError(ValueError):
    """Raised when there is nothing to put on a grid.

    ``stage`` names the step the user should go back to.
    """

    def __init__(self, message: str, stage: str = "upload") -> None:
        super().__init__(message)
        self.stage = stage


@dataclass(frozen=True)
class GridEntry:
    """A driver's slot on the grid.

    Frozen: edits swap entries rather than change them, so a snapshot
    holding entries is never affected by later edits.
    """

    driver_key: str
    class_name: str
    number: str
    driver: str
    best_time: str = ""
    best_seconds: float = INFINITE_TIME
    second_best: str = ""
    second_seconds: float = INFINITE_TIME
    best_second_best_seconds: float = INFINITE_TIME
    points: Optional[float] = None
    average_points: Optional[float] = None
    position: Optional[int] = None
    position_in_class: Optional[int] = None
    source: str = ""  # Comma separated file names
    best_time_source: str = ""
    original_class: str = ""  # Class before any merge

    @classmethod
    def from_driver(cls, driver: DriverRecord) -> "GridEntry":
        best = driver.best_overall_time
        second = driver.second_best_overall_time
        return cls(
            driver_key=driver.key,
            class_name=driver.class_name,
            number=driver.number,
            driver=driver.name,
            best_time=best.time if best else "",
            best_seconds=best.seconds if best else INFINITE_TIME,
            second_best=second.time if second else "",
            second_seconds=second.seconds if second else INFINITE_TIME,
            best_second_best_seconds=driver.best_second_best_seconds(),
            points=driver.total_points if driver.has_points else None,
            average_points=driver.average_points if driver.has_points else None,
            position=driver.best_position,
            position_in_class=driver.best_position_in_class,
            source=", ".join(driver.sources),
            best_time_source=best.source if best else "",
            original_class=driver.class_name,
        )


@dataclass(frozen=True)
class ClassBucket:
    class_name: str
    entries: Tuple[GridEntry, ...]


@dataclass(frozen=True)
class WaveSnapshot:
    """Immutable copy of a wave as it was built."""

    config: WaveConfig
    entries: Tuple[GridEntry, ...]
    empty_positions: int

    def restore(self) -> "GridWave":
        return GridWave(config=self.config, entries=list(self.entries), empty_positions=self.empty_positions)


@dataclass
class GridWave:
    config: WaveConfig
    entries: List[GridEntry] = field(default_factory=list)
    empty_positions: int = 0

    def snapshot(self) -> WaveSnapshot:
        return WaveSnapshot(config=self.config, entries=tuple(self.entries), empty_positions=self.empty_positions)

    def class_buckets(self) -> List[ClassBucket]:
        """Entries grouped by class in first-seen order.

        A class split by a manual move is gathered under its first
        appearance.
        """

        order: List[str] = []
        members: Dict[str, List[GridEntry]] = {}
        for entry in self.entries:
            if entry.class_name not in members:
                order.append(entry.class_name)
                members[entry.class_name] = []
            members[entry.class_name].append(entry)

        return [ClassBucket(class_name=name, entries=tuple(members[name])) for name in order]

    def class_order(self) -> List[str]:
        return [bucket.class_name for bucket in self.class_buckets()]


def primary_sort_value(entry: GridEntry, sort_by: SortBy) -> float:
    """Value a wave is primarily ordered on, before direction is applied."""

    if sort_by is SortBy.POSITION:
        return float(entry.position) if entry.position is not None else INFINITE_TIME
    if sort_by is SortBy.BEST_TIME:
        return entry.best_seconds
    if sort_by is SortBy.SECOND_BEST:
        return entry.second_seconds
    if sort_by is SortBy.BEST_SECOND_BEST:
        return entry.best_second_best_seconds
    if sort_by is SortBy.POINTS_TOTAL:
        return entry.points if entry.points is not None else -INFINITE_TIME
    return entry.average_points if entry.average_points is not None else -INFINITE_TIME


def tie_breaker_value(entry: GridEntry, criterion: TieBreaker):
    if criterion is TieBreaker.BEST_TIME:
        return entry.best_seconds
    if criterion is TieBreaker.SECOND_BEST:
        return entry.second_seconds
    if criterion is TieBreaker.BEST_POSITION_IN_CLASS:
        return entry.position_in_class if entry.position_in_class is not None else INFINITE_TIME
    if criterion is TieBreaker.BEST_POSITION:
        return entry.position if entry.position is not None else INFINITE_TIME
    if criterion is TieBreaker.ALPHABETICAL:
        return entry.driver.casefold()
    return 0


def sort_key(entry: GridEntry, config: WaveConfig) -> tuple:
    """Ascending key realising the wave's primary sort and tie-breakers.

    Points sort descending, with missing points last; only points-based
    sorts consult the tie-breakers. Equal keys keep their prior order.
    """

    value = primary_sort_value(entry, config.sort_by)
    if not config.sort_by.points_based:
        return (value,)
    return (-value,) + tuple(tie_breaker_value(entry, criterion) for criterion in config.tie_breakers)


def order_by_class(entries: Sequence[GridEntry], config: WaveConfig) -> List[GridEntry]:
    """Reorder whole class blocks by each class's fastest best time.

    Order inside each block is left exactly as given.
    """

    blocks: Dict[str, List[GridEntry]] = {}
    for entry in entries:
        blocks.setdefault(entry.class_name, []).append(entry)

    representative = {name: min(e.best_seconds for e in members) for name, members in blocks.items()}
    rank = {name: index for index, name in enumerate(config.classes)}
    ordered = sorted(blocks, key=lambda name: rank.get(name, len(rank)))
    ordered.sort(key=representative.__getitem__, reverse=config.grid_order is GridOrder.SLOWEST_FIRST)

    return [entry for name in ordered for entry in blocks[name]]


def invert(entries: List[GridEntry], config: WaveConfig) -> List[GridEntry]:
    if not config.inverted:
        return entries
    if config.invert_all:
        return entries[::-1]
    count = min(config.invert_count, len(entries))
    return entries[:count][::-1] + entries[count:]


def build_wave(config: WaveConfig, drivers: Sequence[DriverRecord]) -> GridWave:
    entries = [GridEntry.from_driver(driver) for driver in drivers if driver.class_name in config.classes]
    entries.sort(key=lambda entry: sort_key(entry, config))
    if config.group_by_class:
        entries = order_by_class(entries, config)
    entries = invert(entries, config)
    return GridWave(config=config, entries=entries, empty_positions=config.empty_positions)


def build_grid(configs: Sequence[WaveConfig], drivers: Sequence[DriverRecord]) -> List[GridWave]:
    if not drivers:
        raise GridBuildError("No valid CSV files have been uploaded. Please upload valid race data files.")

    grid = [build_wave(config, drivers) for config in configs]
    if not any(wave.entries for wave in grid):
        raise GridBuildError(
            "No valid race entries found for the assigned classes. Please ensure your CSV files "
            "contain proper race data with Class, Driver, and Number columns."
        )

    logger.info("Built grid with %d waves and %d entries", len(grid), sum(len(w.entries) for w in grid))
    return grid


def detect_ties(wave: GridWave) -> Set[int]:
    """Indices of entries sharing a primary sort value with another entry.

    Display only: tie-breakers are ignored and the wave is not touched.
    """

    groups: Dict[float, List[int]] = {}
    for index, entry in enumerate(wave.entries):
        value = round(primary_sort_value(entry, wave.config.sort_by), 3)
        groups.setdefault(value, []).append(index)
    return {index for members in groups.values() if len(members) > 1 for index in members}


@dataclass(frozen=True)
class GridSlot:
    position: int
    wave_index: int
    entry: Optional[GridEntry]  # None for an empty position


def number_grid(grid: Sequence[GridWave]) -> Iterator[GridSlot]:
    """Running grid positions across waves.

    A wave's trailing empty positions take up numbers after it, except
    after the last wave where there is nobody to space from.
    """

    position = 1
    for wave_index, wave in enumerate(grid):
        for entry in wave.entries:
            yield GridSlot(position=position, wave_index=wave_index, entry=entry)
            position += 1
        if wave_index < len(grid) - 1:
            for _ in range(wave.empty_positions):
                yield GridSlot(position=position, wave_index=wave_index, entry=None)
                position += 1
