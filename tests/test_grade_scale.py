import pytest

from app import create_app
from utils.grade_scale import (
    get_pass_percentage,
    grade_bands_with_ranges,
    grade_for_percentage,
    percentage_of,
    ratio_percentage,
)


@pytest.mark.parametrize(
    "percentage,grade",
    [
        (100, "A+"),
        (90, "A+"),
        (89.99, "A"),
        (80, "A"),
        (70, "B+"),
        (60, "B"),
        (50, "C+"),
        (40, "C"),
        (33, "D"),
        (32.99, "F"),
        (0, "F"),
    ],
)
def test_extended_scale(percentage, grade):
    assert grade_for_percentage(percentage, "extended") == grade


@pytest.mark.parametrize(
    "percentage,grade",
    [(90, "A+"), (85, "A"), (72, "B+"), (65, "B"), (50, "C"), (49.99, "F"), (35, "F")],
)
def test_compact_scale(percentage, grade):
    assert grade_for_percentage(percentage, "compact") == grade


def test_unknown_scale_is_rejected():
    with pytest.raises(ValueError):
        grade_for_percentage(50, "letters")


def test_scale_and_pass_mark_come_from_app_config():
    app = create_app(
        {
            "ENVIRONMENT": "test",
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "GRADE_SCALE": "compact",
            "PASS_PERCENTAGE": 40,
        }
    )
    with app.app_context():
        assert grade_for_percentage(45) == "F"
        assert get_pass_percentage() == 40.0
    # outside an app the defaults apply
    assert grade_for_percentage(45) == "C"
    assert get_pass_percentage() == 33.0


def test_percentage_of():
    assert percentage_of(72.5, 100) == 72.5
    assert percentage_of(1, 3) == 33.33
    assert percentage_of(10, 0) == 0.0


def test_ratio_percentage_is_not_rounded():
    assert percentage_of(65.995, 200) == 33.0
    assert ratio_percentage(65.995, 200) < 33
    assert grade_for_percentage(ratio_percentage(65.995, 200), "extended") == "F"
    assert ratio_percentage(10, 0) == 0.0


def test_band_ranges_for_an_80_mark_paper():
    bands = grade_bands_with_ranges(80, "extended")
    labels = {band["grade"]: band["marks_range"] for band in bands}
    assert labels["A+"] == "72-80"
    assert labels["A"] == "64-72"
    assert labels["D"] == "26.4-32"
    assert labels["F"] == "0-26.4"
    assert [band["grade"] for band in bands] == ["A+", "A", "B+", "B", "C+", "C", "D", "F"]
