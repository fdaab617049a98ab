from typing import Optional

import pytest

from grid_core.entry import DriverRecord, TimeRecord
from grid_core.grid import (
    GridBuildError,
    GridEntry,
    GridWave,
    build_grid,
    build_wave,
    detect_ties,
    number_grid,
)
from grid_core.timing import parse_time_to_seconds
from grid_core.waves import GridOrder, SortBy, TieBreaker, WaveConfig


def _driver(
    name: str,
    class_name: str = "GT",
    best: Optional[str] = None,
    points: Optional[float] = None,
    position: Optional[int] = None,
    pic: Optional[int] = None,
    second: Optional[str] = None,
) -> DriverRecord:
    record = DriverRecord(key=name.lower(), name=name, number=str(len(name)), class_name=class_name)
    if best:
        record.best_overall_time = TimeRecord(best, parse_time_to_seconds(best), "a.csv")
    if second:
        record.second_best_overall_time = TimeRecord(second, parse_time_to_seconds(second), "a.csv")
    if points is not None:
        record.total_points = points
        record.average_points = points
        record.points_count = 1
    record.best_position = position
    record.best_position_in_class = pic
    return record


def _names(wave: GridWave):
    return [entry.driver for entry in wave.entries]


def test_sort_by_best_time() -> None:
    config = WaveConfig(wave_number=1, classes=("GT",), sort_by=SortBy.BEST_TIME)
    wave = build_wave(config, [_driver("Slow", best="83.456"), _driver("Fast", best="82.0")])

    assert _names(wave) == ["Fast", "Slow"]


def test_missing_values_sort_last() -> None:
    config = WaveConfig(wave_number=1, classes=("GT",), sort_by=SortBy.POSITION)
    wave = build_wave(config, [_driver("NoPos"), _driver("Second", position=2), _driver("First", position=1)])
    assert _names(wave) == ["First", "Second", "NoPos"]

    config = WaveConfig(wave_number=1, classes=("GT",), sort_by=SortBy.POINTS_TOTAL, tie_breakers=())
    wave = build_wave(config, [_driver("None"), _driver("Low", points=1), _driver("High", points=9)])
    assert _names(wave) == ["High", "Low", "None"]


def test_points_ties_cascade_through_tie_breakers() -> None:
    config = WaveConfig(
        wave_number=1,
        classes=("GT",),
        sort_by=SortBy.POINTS_TOTAL,
        tie_breakers=(TieBreaker.BEST_TIME, TieBreaker.BEST_POSITION_IN_CLASS, TieBreaker.ALPHABETICAL),
    )
    drivers = [
        _driver("Amy", points=10, best="1:20.000", pic=3),
        _driver("Zed", points=10, best="1:20.000", pic=1),
        _driver("Top", points=20, best="1:30.000", pic=9),
    ]

    assert _names(build_wave(config, drivers)) == ["Top", "Zed", "Amy"]


def test_exhausted_tie_breakers_keep_prior_order() -> None:
    config = WaveConfig(
        wave_number=1,
        classes=("GT",),
        sort_by=SortBy.POINTS_AVERAGE,
        tie_breakers=(TieBreaker.MANUAL,),
    )
    drivers = [_driver("Zed", points=5), _driver("Amy", points=5)]

    assert _names(build_wave(config, drivers)) == ["Zed", "Amy"]


def test_tie_breakers_ignored_for_time_sorts() -> None:
    config = WaveConfig(wave_number=1, classes=("GT",), tie_breakers=(TieBreaker.ALPHABETICAL,))
    drivers = [_driver("Zed", best="80.0"), _driver("Amy", best="80.0")]

    assert _names(build_wave(config, drivers)) == ["Zed", "Amy"]


def test_group_by_class_orders_blocks_by_fastest_member() -> None:
    drivers = [
        _driver("A1", "A", best="90.0"),
        _driver("A2", "A", best="95.0"),
        _driver("B1", "B", best="80.0"),
        _driver("B2", "B", best="99.0"),
    ]
    fastest = WaveConfig(wave_number=1, classes=("A", "B"), grid_order=GridOrder.FASTEST_FIRST)
    slowest = WaveConfig(wave_number=1, classes=("A", "B"), grid_order=GridOrder.SLOWEST_FIRST)

    assert _names(build_wave(fastest, drivers)) == ["B1", "B2", "A1", "A2"]
    assert _names(build_wave(slowest, drivers)) == ["A1", "A2", "B1", "B2"]


def test_group_by_class_keeps_intra_class_points_order() -> None:
    drivers = [
        _driver("A-low", "A", best="70.0", points=1),
        _driver("A-high", "A", best="90.0", points=9),
        _driver("B-only", "B", best="80.0", points=5),
    ]
    config = WaveConfig(
        wave_number=1,
        classes=("A", "B"),
        sort_by=SortBy.POINTS_TOTAL,
        grid_order=GridOrder.SLOWEST_FIRST,
    )

    assert _names(build_wave(config, drivers)) == ["B-only", "A-high", "A-low"]


def test_partial_inversion_reverses_the_head_only() -> None:
    drivers = [_driver(f"D{n}", best=f"{80 + n}.0") for n in (1, 2, 3, 4)]
    config = WaveConfig(wave_number=1, classes=("GT",), inverted=True, invert_count=2)
    assert _names(build_wave(config, drivers)) == ["D2", "D1", "D3", "D4"]

    config = WaveConfig(wave_number=1, classes=("GT",), inverted=True, invert_count=10)
    assert _names(build_wave(config, drivers)) == ["D4", "D3", "D2", "D1"]

    config = WaveConfig(wave_number=1, classes=("GT",), inverted=True, invert_all=True)
    assert _names(build_wave(config, drivers)) == ["D4", "D3", "D2", "D1"]


def test_build_grid_filters_by_wave_classes() -> None:
    drivers = [_driver("Alice", "GT", best="80.0"), _driver("Cara", "P", best="70.0"), _driver("Eve", "TCR")]
    configs = [
        WaveConfig(wave_number=1, classes=("P",), empty_positions=2),
        WaveConfig(wave_number=2, classes=("GT",)),
        WaveConfig(wave_number=3),
    ]

    grid = build_grid(configs, drivers)

    assert [_names(wave) for wave in grid] == [["Cara"], ["Alice"], []]
    assert grid[0].empty_positions == 2
    assert all(entry.driver != "Eve" for wave in grid for entry in wave.entries)


def test_build_grid_rejects_empty_input() -> None:
    with pytest.raises(GridBuildError) as excinfo:
        build_grid([WaveConfig(wave_number=1, classes=("GT",))], [])
    assert excinfo.value.stage == "upload"

    with pytest.raises(GridBuildError):
        build_grid([WaveConfig(wave_number=1, classes=("P",))], [_driver("Alice", "GT")])


def test_detect_ties_flags_groups_without_reordering() -> None:
    config = WaveConfig(wave_number=1, classes=("GT",))
    wave = build_wave(
        config,
        [_driver("A", best="80.0"), _driver("B", best="81.0"), _driver("C", best="1:20.000"), _driver("D", best="1:21.0")],
    )
    before = list(wave.entries)

    assert _names(wave) == ["A", "C", "B", "D"]
    assert detect_ties(wave) == {0, 1, 2, 3}
    assert wave.entries == before

    wave = build_wave(config, [_driver("A", best="80.0"), _driver("B", best="80.5")])
    assert detect_ties(wave) == set()


def test_number_grid_leaves_room_between_waves() -> None:
    entry = GridEntry(driver_key="a", class_name="GT", number="1", driver="A")
    grid = [
        GridWave(config=WaveConfig(wave_number=1), entries=[entry, entry], empty_positions=2),
        GridWave(config=WaveConfig(wave_number=2), entries=[entry], empty_positions=3),
    ]

    slots = list(number_grid(grid))

    assert [slot.position for slot in slots] == [1, 2, 3, 4, 5]
    assert [slot.entry is None for slot in slots] == [False, False, True, True, False]
    assert [slot.wave_index for slot in slots] == [0, 0, 0, 0, 1]
