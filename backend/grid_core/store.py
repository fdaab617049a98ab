from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Union

from .consolidate import consolidate_drivers, validate_drivers
from .editor import GridEditor
from .entry import DriverRecord
from .grid import build_grid
from .guard import MoveGuard
from .parser import ParsedFile, parse_file
from .waves import (
    WaveConfig,
    assign_all_unassigned,
    assign_class,
    default_sort_option,
    extract_classes,
    initialize_wave_configs,
    unassign_class,
    update_wave,
)


logger = logging.getLogger(__name__)


class GridStore:
    """Everything one grid-building session knows.

    Holds the uploaded files, the roster consolidated from them, the wave
    configuration and, once built, the editable grid. Nothing is persisted;
    :meth:`start_new_grid` throws it all away.
    """

    def __init__(
        self,
        move_guard_seconds: float | None = None,
        max_waves: int | None = None,
        default_wave_spacing: int | None = None,
    ) -> None:
        self.move_guard_seconds = (
            move_guard_seconds
            if move_guard_seconds is not None
            else float(os.getenv("GRID_MOVE_GUARD_SECONDS", "0.2"))
        )
        self.max_waves = max_waves if max_waves is not None else int(os.getenv("GRID_MAX_WAVES", "10"))
        self.default_wave_spacing = (
            default_wave_spacing
            if default_wave_spacing is not None
            else int(os.getenv("GRID_DEFAULT_WAVE_SPACING", "0"))
        )
        self._files: Dict[str, ParsedFile] = {}
        self._drivers: List[DriverRecord] = []
        self.wave_configs: List[WaveConfig] = []
        self.editor: Optional[GridEditor] = None

    @property
    def files(self) -> List[ParsedFile]:
        return list(self._files.values())

    @property
    def drivers(self) -> List[DriverRecord]:
        return list(self._drivers)

    def add_file(self, file_name: str, content: Union[str, bytes]) -> ParsedFile:
        """Parse and add one file, then rebuild the roster from scratch.

        A file that fails to parse raises ``FileParseError`` and leaves the
        session untouched. Re-uploading a name replaces the earlier file.
        """

        try:
            parsed = parse_file(content, file_name)
        except ValueError as exc:
            logger.warning("Rejected %s: %s", file_name, exc)
            raise

        if file_name in self._files:
            logger.info("Replacing previously uploaded %s", file_name)
        self._files[file_name] = parsed
        self._recompute()
        return parsed

    def remove_file(self, file_name: str) -> None:
        if file_name not in self._files:
            raise KeyError(file_name)
        del self._files[file_name]
        self._recompute()
        if not self._files:
            self._clear_configuration()

    def remove_all_files(self) -> None:
        self._files.clear()
        self._recompute()
        self._clear_configuration()

    def _recompute(self) -> None:
        self._drivers = consolidate_drivers(self.files)
        if self._drivers:
            for problem in validate_drivers(self._drivers):
                logger.warning("Roster check: %s", problem)

    def _clear_configuration(self) -> None:
        self.wave_configs = []
        self.editor = None

    def classes(self) -> List[str]:
        return extract_classes(self._drivers)

    def has_position_data(self) -> bool:
        return any(driver.best_position is not None for driver in self._drivers)

    def set_wave_count(self, wave_count: int, default_wave_spacing: int | None = None) -> List[WaveConfig]:
        if not 1 <= wave_count <= self.max_waves:
            raise ValueError(f"wave count must be between 1 and {self.max_waves}")
        spacing = self.default_wave_spacing if default_wave_spacing is None else default_wave_spacing
        default_sort = default_sort_option(len(self._files), self.has_position_data())
        self.wave_configs = initialize_wave_configs(wave_count, spacing, default_sort)
        return self.wave_configs

    def update_wave(self, wave_index: int, **changes: Any) -> WaveConfig:
        self.wave_configs = update_wave(self.wave_configs, wave_index, **changes)
        return self.wave_configs[wave_index]

    def assign_class(self, wave_index: int, class_name: str) -> WaveConfig:
        self.wave_configs = assign_class(self.wave_configs, wave_index, class_name)
        return self.wave_configs[wave_index]

    def unassign_class(self, wave_index: int, class_name: str) -> WaveConfig:
        self.wave_configs = unassign_class(self.wave_configs, wave_index, class_name)
        return self.wave_configs[wave_index]

    def assign_all_classes(self, wave_index: int) -> WaveConfig:
        self.wave_configs = assign_all_unassigned(self.wave_configs, wave_index, self.classes())
        return self.wave_configs[wave_index]

    def build_grid(self) -> GridEditor:
        """Realise the configured waves and open them for editing.

        Raises ``GridBuildError`` when the roster is empty or no driver falls
        in an assigned class.
        """

        try:
            grid = build_grid(self.wave_configs, self._drivers)
        except ValueError as exc:
            logger.warning("Grid build rejected: %s", exc)
            raise
        self.editor = GridEditor(grid, guard=MoveGuard(self.move_guard_seconds))
        return self.editor

    def start_new_grid(self) -> None:
        self._files.clear()
        self._drivers = []
        self._clear_configuration()
        logger.info("Started a new grid")
