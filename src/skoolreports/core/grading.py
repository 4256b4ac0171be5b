from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

GRADE_BANDS: List[Tuple[int, int, str, int]] = [
    (95, 100, "D1", 1),
    (80, 94, "D2", 2),
    (70, 79, "C3", 3),
    (65, 69, "C4", 4),
    (60, 64, "C5", 5),
    (55, 59, "C6", 6),
    (50, 54, "P7", 7),
    (40, 49, "P8", 8),
]

FALLBACK_GRADE: Tuple[str, int] = ("F9", 9)

GRADES: Tuple[str, ...] = tuple(letter for _, _, letter, _ in GRADE_BANDS) + (FALLBACK_GRADE[0],)

MIN_MARKS = 0
MAX_MARKS = 100


def clamp_marks(value: int) -> int:
    return max(MIN_MARKS, min(MAX_MARKS, int(value)))


def parse_marks(raw: Optional[str]) -> int:
    """Form entry: anything that is not an integer counts as 0."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        value = 0
    return clamp_marks(value)


def grade_for(
    marks: int,
    bands: Sequence[Tuple[int, int, str, int]] = GRADE_BANDS,
) -> Tuple[str, int]:
    for low, high, letter, points in bands:
        if low <= marks <= high:
            return letter, points
    return FALLBACK_GRADE


def grading_scale() -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = [
        {"grade": letter, "points": points, "min_marks": low, "max_marks": high}
        for low, high, letter, points in GRADE_BANDS
    ]
    lowest_banded = min(low for low, _, _, _ in GRADE_BANDS)
    rows.append(
        {
            "grade": FALLBACK_GRADE[0],
            "points": FALLBACK_GRADE[1],
            "min_marks": MIN_MARKS,
            "max_marks": lowest_banded - 1,
        }
    )
    return rows
