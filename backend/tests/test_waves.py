import pytest

from grid_core.entry import DriverRecord, TimeRecord
from grid_core.waves import (
    GridOrder,
    SortBy,
    StartType,
    TieBreaker,
    WaveConfig,
    assign_all_unassigned,
    assign_class,
    assigned_classes,
    available_sort_options,
    available_tie_breakers,
    car_count_in_wave,
    car_counts_by_class,
    default_sort_option,
    describe_wave,
    extract_classes,
    initialize_wave_configs,
    unassign_class,
    update_wave,
)


def _driver(name: str, class_name: str, **fields) -> DriverRecord:
    return DriverRecord(key=name.lower(), name=name, number="1", class_name=class_name, **fields)


def test_initialize_wave_configs_defaults() -> None:
    configs = initialize_wave_configs(3, default_wave_spacing=2)

    assert [config.wave_number for config in configs] == [1, 2, 3]
    assert [config.empty_positions for config in configs] == [2, 2, 0]
    assert all(config.start_type is StartType.FLYING for config in configs)
    assert configs[0].tie_breakers == (
        TieBreaker.BEST_TIME,
        TieBreaker.BEST_POSITION_IN_CLASS,
        TieBreaker.ALPHABETICAL,
    )
    assert configs[0].invert_count == 2

    with pytest.raises(ValueError):
        initialize_wave_configs(0)


def test_default_sort_prefers_position_for_single_results_file() -> None:
    assert default_sort_option(1, True) is SortBy.POSITION
    assert default_sort_option(2, True) is SortBy.BEST_TIME
    assert default_sort_option(1, False) is SortBy.BEST_TIME


def test_standing_start_cascades_to_later_waves() -> None:
    configs = update_wave(initialize_wave_configs(3), 1, start_type="standing")

    assert [config.start_type for config in configs] == [StartType.FLYING, StartType.STANDING, StartType.STANDING]
    with pytest.raises(ValueError):
        update_wave(configs, 2, start_type=StartType.FLYING)


def test_class_can_only_belong_to_one_wave() -> None:
    configs = assign_class(initialize_wave_configs(2), 0, "GT")

    with pytest.raises(ValueError, match="already assigned to wave 1"):
        assign_class(configs, 1, "GT")
    with pytest.raises(ValueError):
        update_wave(configs, 1, classes=("P", "GT"))

    configs = unassign_class(configs, 0, "GT")
    configs = assign_class(configs, 1, "GT")
    assert assigned_classes(configs) == {"GT"}
    assert assigned_classes(configs, exclude_index=1) == set()


def test_assign_all_unassigned_takes_the_remaining_classes() -> None:
    configs = assign_class(initialize_wave_configs(2), 0, "P")
    configs = assign_all_unassigned(configs, 1, ["GT", "P", "TCR"])

    assert configs[0].classes == ("P",)
    assert configs[1].classes == ("GT", "TCR")


def test_wave_config_rejects_bad_values() -> None:
    with pytest.raises(ValueError):
        WaveConfig(wave_number=1, tie_breakers=("bestTime", "secondBest", "alphabetical", "manual"))
    with pytest.raises(ValueError):
        WaveConfig(wave_number=1, invert_count=-1)
    with pytest.raises(ValueError):
        update_wave(initialize_wave_configs(1), 0, empty_positions=-2)
    with pytest.raises(ValueError):
        update_wave(initialize_wave_configs(1), 3, inverted=True)


def test_class_helpers() -> None:
    drivers = [_driver("Alice", "GT"), _driver("Bob", "GT"), _driver("Cara", "P"), _driver("Dan", "")]

    assert extract_classes(drivers) == ["GT", "P"]
    assert car_counts_by_class(drivers) == {"GT": 2, "P": 1}
    assert car_count_in_wave(WaveConfig(wave_number=1, classes=("GT",)), drivers) == 2


def test_options_are_withheld_without_data() -> None:
    timed = _driver("Alice", "GT", best_overall_time=TimeRecord("1:23.0", 83.0, "a.csv"))

    assert available_sort_options([timed]) == [SortBy.BEST_TIME]
    assert available_tie_breakers([timed]) == [TieBreaker.BEST_TIME, TieBreaker.ALPHABETICAL, TieBreaker.MANUAL]

    scored = _driver("Bob", "GT", best_position=2, points_count=1, total_points=10)
    options = available_sort_options([timed, scored])
    assert SortBy.POSITION in options
    assert SortBy.POINTS_TOTAL in options and SortBy.POINTS_AVERAGE in options


def test_describe_wave() -> None:
    config = WaveConfig(
        wave_number=1,
        classes=("GT", "P"),
        grid_order=GridOrder.FASTEST_FIRST,
        inverted=True,
        invert_count=4,
    )
    assert describe_wave(config) == (
        "Sorted by Best Overall Time • fastest class first • top 4 positions inverted • Classes: GT, P"
    )
