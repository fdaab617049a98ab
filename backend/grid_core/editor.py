from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .grid import GridEntry, GridWave, WaveSnapshot, detect_ties
from .guard import MoveGuard


logger = logging.getLogger(__name__)

UP = "up"
DOWN = "down"


class GridEditor:
    """Hand adjustments over a built grid.

    The grid as built is kept as an immutable snapshot for resets. Every
    operation addresses waves and entries by index; anything out of range
    is ignored and reported by a ``False`` return.
    """

    def __init__(self, grid: Sequence[GridWave], guard: Optional[MoveGuard] = None) -> None:
        snapshots = tuple(wave.snapshot() for wave in grid)
        self._original: Tuple[WaveSnapshot, ...] = snapshots
        self.waves: List[GridWave] = [snapshot.restore() for snapshot in snapshots]
        self.guard = guard or MoveGuard()
        # wave index -> class -> every class folded into the same group
        self.merged_classes: Dict[int, Dict[str, List[str]]] = {}

    @property
    def original(self) -> Tuple[WaveSnapshot, ...]:
        return self._original

    def _entries(self, wave_index: int) -> Optional[List[GridEntry]]:
        if 0 <= wave_index < len(self.waves):
            return self.waves[wave_index].entries
        logger.debug("Ignoring edit on unknown wave %s", wave_index)
        return None

    def _entry_index_ok(self, entries: List[GridEntry], entry_index: int) -> bool:
        if 0 <= entry_index < len(entries):
            return True
        logger.debug("Ignoring edit on unknown entry %s", entry_index)
        return False

    def move_entry(self, from_wave: int, from_index: int, to_wave: int, to_index: int) -> bool:
        """Drag an entry to another slot, possibly in another wave."""

        source = self._entries(from_wave)
        target = self._entries(to_wave)
        if source is None or target is None or not self._entry_index_ok(source, from_index):
            return False
        if not 0 <= to_index <= len(target):
            logger.debug("Ignoring drop at unknown slot %s", to_index)
            return False
        if from_wave == to_wave and from_index == to_index:
            return False

        entry = source.pop(from_index)
        target.insert(min(to_index, len(target)), entry)
        return True

    def move_to_start_of_wave(self, wave_index: int, entry_index: int) -> bool:
        entries = self._entries(wave_index)
        if entries is None or not self._entry_index_ok(entries, entry_index):
            return False
        entries.insert(0, entries.pop(entry_index))
        return True

    def move_to_end_of_wave(self, wave_index: int, entry_index: int) -> bool:
        entries = self._entries(wave_index)
        if entries is None or not self._entry_index_ok(entries, entry_index):
            return False
        entries.append(entries.pop(entry_index))
        return True

    def move_to_end_of_class(self, wave_index: int, entry_index: int) -> bool:
        """Move an entry just behind the last car of its own class."""

        entries = self._entries(wave_index)
        if entries is None or not self._entry_index_ok(entries, entry_index):
            return False

        class_name = entries[entry_index].class_name
        last = max(index for index, entry in enumerate(entries) if entry.class_name == class_name)
        if last == entry_index:
            return False

        # Popping shifts the last class entry down by one.
        entries.insert(last, entries.pop(entry_index))
        return True

    def move_class_up(self, wave_index: int, class_name: str) -> bool:
        return self._move_class(wave_index, class_name, UP)

    def move_class_down(self, wave_index: int, class_name: str) -> bool:
        return self._move_class(wave_index, class_name, DOWN)

    def _move_class(self, wave_index: int, class_name: str, direction: str) -> bool:
        token = self.guard.acquire((wave_index, class_name, direction))
        if token is None:
            return False

        entries = self._entries(wave_index)
        if entries is None:
            self.guard.release(token)
            return False

        buckets = self.waves[wave_index].class_buckets()
        order = [bucket.class_name for bucket in buckets]
        current = order.index(class_name) if class_name in order else -1
        other = current - 1 if direction == UP else current + 1
        if current == -1 or not 0 <= other < len(order):
            self.guard.release(token)
            logger.debug("Class %s cannot move %s in wave %s", class_name, direction, wave_index)
            return False

        buckets[current], buckets[other] = buckets[other], buckets[current]
        entries[:] = [entry for bucket in buckets for entry in bucket.entries]
        # The token stays live until it lapses so rapid repeats are dropped.
        return True

    def merge_class_with_previous(self, wave_index: int, class_name: str) -> bool:
        """Fold a class into the class directly ahead of it in the wave."""

        entries = self._entries(wave_index)
        if entries is None:
            return False
        order = self.waves[wave_index].class_order()
        if class_name not in order or order.index(class_name) == 0:
            logger.debug("No class ahead of %s to merge into in wave %s", class_name, wave_index)
            return False

        previous = order[order.index(class_name) - 1]
        entries[:] = [
            replace(entry, class_name=previous) if entry.class_name == class_name else entry
            for entry in entries
        ]

        wave_groups = self.merged_classes.setdefault(wave_index, {})
        group = list(wave_groups.get(previous, [previous]))
        group.extend(name for name in wave_groups.get(class_name, [class_name]) if name not in group)
        for name in group:
            wave_groups[name] = group
        return True

    def merged_class_label(self, wave_index: int, class_name: str) -> str:
        group = self.merged_classes.get(wave_index, {}).get(class_name)
        if not group or len(group) <= 1:
            return class_name
        return " / ".join(group)

    def combine_with_previous_wave(self, wave_index: int) -> bool:
        """Append a wave's entries to the wave before it and drop it.

        The snapshot is combined the same way so resets stay aligned with
        the remaining waves.
        """

        if not 0 < wave_index < len(self.waves):
            logger.debug("Wave %s has no previous wave to combine with", wave_index)
            return False

        self.waves[wave_index - 1].entries.extend(self.waves[wave_index].entries)
        del self.waves[wave_index]

        original = list(self._original)
        if wave_index < len(original):
            previous, current = original[wave_index - 1], original[wave_index]
            original[wave_index - 1] = replace(previous, entries=previous.entries + current.entries)
            del original[wave_index]
        self._original = tuple(original)

        merged: Dict[int, Dict[str, List[str]]] = {}
        for index, groups in self.merged_classes.items():
            target = index if index < wave_index else index - 1
            merged.setdefault(target, {}).update(groups)
        self.merged_classes = merged

        logger.info("Combined wave %d into wave %d", wave_index + 1, wave_index)
        return True

    def reset_wave(self, wave_index: int) -> bool:
        if not 0 <= wave_index < min(len(self.waves), len(self._original)):
            return False
        self.waves[wave_index] = self._original[wave_index].restore()
        self.merged_classes.pop(wave_index, None)
        logger.info("Reset wave %d", wave_index + 1)
        return True

    def reset_grid(self) -> None:
        self.waves = [snapshot.restore() for snapshot in self._original]
        self.merged_classes = {}
        logger.info("Reset grid to its built order")

    def is_wave_modified(self, wave_index: int) -> bool:
        """Cheap positional diff against the built wave on number and driver."""

        if not 0 <= wave_index < min(len(self.waves), len(self._original)):
            return False
        original = self._original[wave_index].entries
        current = self.waves[wave_index].entries
        if len(original) != len(current):
            return True
        return any(
            (before.number, before.driver) != (after.number, after.driver)
            for before, after in zip(original, current)
        )

    def tied_positions(self, wave_index: int) -> Set[int]:
        if not 0 <= wave_index < len(self.waves):
            return set()
        return detect_ties(self.waves[wave_index])
