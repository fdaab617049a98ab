import pytest

from grid_core.parser import LAPTIMES, RESULTS, FileParseError, parse_file


RESULTS_CSV = """Pos,No.,Name,Class,Best Tm,2nd Best,Points,PIC
1,12,Alice,GT,1:23.456,1:23.900,25,1
2,7,Bob,GT,1:24.000,,18,2
3,99,Cara,P,1:20.100,1:20.500,15,1
"""

LAPTIMES_CSV = """"Lap","Time of Day","Lap Tm","Speed"
12 - Alice Smith - GT
"1","10:00:01","1:25.000","150.1"
"2","10:01:26","1:23.500","152.0"
"3","10:02:50","1:24.000","151.2"
"4","10:04:14","1:23.800","151.6"
7 - Bob Jones - GT
"1","10:00:03","1:26.000","149.0"
"""


def test_parse_results_export() -> None:
    parsed = parse_file(RESULTS_CSV, "race1.csv")

    assert parsed.kind == RESULTS
    assert [entry.driver for entry in parsed.entries] == ["Alice", "Bob", "Cara"]
    alice = parsed.entries[0]
    assert alice.best_time == "1:23.456"
    assert alice.second_best == "1:23.900"
    assert alice.position_in_class == "1"
    assert parsed.entries[1].second_best is None
    assert parsed.warnings == []


def test_parse_results_warns_about_missing_optional_columns() -> None:
    parsed = parse_file("Class,Driver,No.\nGT,Alice,12\n", "entries.csv")

    assert "Missing Best Time column" in parsed.warnings
    assert "Missing Points column" in parsed.warnings
    assert "Missing Position in Class (PIC) column" in parsed.warnings


def test_parse_results_accepts_semicolons_and_bytes() -> None:
    content = "\ufeffClass;Driver;Number;Best Time\nGT;Alice;12;83.4\n".encode("utf-8")
    parsed = parse_file(content, "semi.csv")

    assert parsed.entries[0].driver == "Alice"
    assert parsed.entries[0].best_time == "83.4"


def test_parse_laptimes_keeps_two_fastest_laps() -> None:
    parsed = parse_file(LAPTIMES_CSV, "laps.csv")

    assert parsed.kind == LAPTIMES
    alice, bob = parsed.entries
    assert (alice.number, alice.driver, alice.class_name) == ("12", "Alice Smith", "GT")
    assert alice.best_time == "1:23.500"
    assert alice.speed == "152.0"
    assert alice.second_best == "1:23.800"
    assert alice.second_speed == "151.6"
    assert bob.best_time == "1:26.000"
    assert bob.second_best is None
    assert "second_best" in parsed.fields


@pytest.mark.parametrize(
    "content",
    [
        "",
        "   \n\n",
        "Gap,Laps\n1.2,10\n",
        "Class,Driver\n",
        "Class,Driver\nGT,Alice,extra\n",
        b"\xff\xfe\x00bad",
        '"Lap","Time of Day","Lap Tm","Speed"\n12 - Alice - GT\n',
    ],
)
def test_unusable_files_are_rejected(content) -> None:
    with pytest.raises(FileParseError) as excinfo:
        parse_file(content, "broken.csv")
    assert excinfo.value.file_name == "broken.csv"
