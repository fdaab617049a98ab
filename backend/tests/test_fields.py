from grid_core.fields import fields_present, normalize_field, normalize_row


def test_normalize_field_uses_first_populated_variant() -> None:
    row = {"No.": "", "Number": "42", "Car": "7"}
    assert normalize_field(row, "number") == "42"


def test_normalize_field_returns_none_not_empty() -> None:
    row = {"Points": "  ", "Pts": None}
    assert normalize_field(row, "points") is None


def test_normalize_field_keeps_zero() -> None:
    assert normalize_field({"Points": "0"}, "points") == "0"


def test_normalize_row_maps_export_shapes_alike() -> None:
    orbits = normalize_row({"No.": "12", "Name": "Alice", "Class": "GT", "Best Tm": "1:23.456"}, "a.csv")
    other = normalize_row({"Number": "12", "Driver": "Alice", "class": "GT", "BestTime": "1:23.456"}, "b.csv")

    assert (orbits.number, orbits.driver, orbits.class_name, orbits.best_time) == (
        other.number,
        other.driver,
        other.class_name,
        other.best_time,
    )
    assert orbits.source == "a.csv"
    assert orbits.points is None


def test_fields_present_ignores_unknown_headers() -> None:
    present = fields_present(["Pos", " Name ", "Class", "Gap"])
    assert present == {"position", "driver", "class_name"}
