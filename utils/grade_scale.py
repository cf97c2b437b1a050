from flask import current_app, has_app_context

# (minimum percentage, grade) pairs, highest band first. Anything below the
# last band is "F".
GRADE_SCALES = {
    "extended": [
        (90, "A+"),
        (80, "A"),
        (70, "B+"),
        (60, "B"),
        (50, "C+"),
        (40, "C"),
        (33, "D"),
    ],
    "compact": [
        (90, "A+"),
        (80, "A"),
        (70, "B+"),
        (60, "B"),
        (50, "C"),
    ],
}
FAIL_GRADE = "F"

DEFAULT_GRADE_SCALE = "extended"
DEFAULT_PASS_PERCENTAGE = 33.0


def get_grade_bands(scale_name: str | None = None) -> list[tuple[float, str]]:
    """Return the configured banding table (GRADE_SCALE in app config)."""
    if scale_name is None:
        scale_name = (
            current_app.config.get("GRADE_SCALE", DEFAULT_GRADE_SCALE)
            if has_app_context()
            else DEFAULT_GRADE_SCALE
        )
    try:
        return GRADE_SCALES[scale_name]
    except KeyError:
        raise ValueError(
            f"Unknown GRADE_SCALE '{scale_name}'. Must be one of {sorted(GRADE_SCALES)}"
        )


def get_pass_percentage() -> float:
    if has_app_context():
        return float(
            current_app.config.get("PASS_PERCENTAGE", DEFAULT_PASS_PERCENTAGE)
        )
    return DEFAULT_PASS_PERCENTAGE


def grade_for_percentage(percentage: float, scale_name: str | None = None) -> str:
    """Map a 0..100 percentage to a letter grade."""
    for minimum, grade in get_grade_bands(scale_name):
        if percentage >= minimum:
            return grade
    return FAIL_GRADE


def ratio_percentage(scored: float, full: float) -> float:
    """Unrounded percentage. Compare this against grade bands and the pass mark."""
    if not full or full <= 0:
        return 0.0
    return (float(scored) / float(full)) * 100.0


def percentage_of(scored: float, full: float) -> float:
    """Percentage rounded to 2 places, for display."""
    return round(ratio_percentage(scored, full), 2)


def grade_bands_with_ranges(
    full_marks: float, scale_name: str | None = None
) -> list[dict]:
    """Describe every band (including F) with its marks range for full_marks.

    Ranges are half-open [low, high) except the top band, which closes at
    full_marks. Labels look like "72-80" for a 80-mark paper.
    """
    bands = get_grade_bands(scale_name)
    described = []
    upper_pct = 100.0
    for minimum, grade in bands:
        described.append(_describe_band(grade, minimum, upper_pct, full_marks))
        upper_pct = minimum
    described.append(_describe_band(FAIL_GRADE, 0.0, upper_pct, full_marks))
    return described


def _describe_band(grade, low_pct, high_pct, full_marks):
    low = round(full_marks * low_pct / 100.0, 2)
    high = round(full_marks * high_pct / 100.0, 2)
    return {
        "grade": grade,
        "min_percentage": low_pct,
        "max_percentage": high_pct,
        "marks_range": f"{low:g}-{high:g}",
    }
