"""Starting grid engine: roster consolidation, wave sorting and grid edits."""

from .editor import GridEditor
from .entry import DriverRecord, RawEntry
from .grid import GridBuildError, GridEntry, GridWave, build_grid
from .parser import FileParseError, parse_file
from .store import GridStore
from .waves import GridOrder, SortBy, StartType, TieBreaker, WaveConfig

__all__ = [
    "DriverRecord",
    "FileParseError",
    "GridBuildError",
    "GridEditor",
    "GridEntry",
    "GridOrder",
    "GridStore",
    "GridWave",
    "RawEntry",
    "SortBy",
    "StartType",
    "TieBreaker",
    "WaveConfig",
    "build_grid",
    "parse_file",
]
