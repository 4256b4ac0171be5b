from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

DIVISION_1 = "Division 1"
DIVISION_2 = "Division 2"
DIVISION_3 = "Division 3"
DIVISION_4 = "Division 4"
UNGRADED = "Ungraded (U)"

DIVISION_BANDS: List[Tuple[int, int, str]] = [
    (4, 12, DIVISION_1),
    (13, 24, DIVISION_2),
    (25, 28, DIVISION_3),
    (29, 32, DIVISION_4),
]

# Best to worst.
DIVISIONS: Tuple[str, ...] = (DIVISION_1, DIVISION_2, DIVISION_3, DIVISION_4, UNGRADED)


def division_for(
    total_aggregate: int,
    bands: Sequence[Tuple[int, int, str]] = DIVISION_BANDS,
) -> str:
    for low, high, label in bands:
        if low <= total_aggregate <= high:
            return label
    return UNGRADED


def division_rank(label: str) -> int:
    try:
        return DIVISIONS.index(label)
    except ValueError as exc:
        raise ValueError(f"Unknown division: {label}") from exc


def division_scale() -> List[Dict[str, object]]:
    return [
        {"division": label, "min_aggregate": low, "max_aggregate": high}
        for low, high, label in DIVISION_BANDS
    ]
