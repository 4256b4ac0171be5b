"""Class results: totals, aggregate, division and position for one class.

Pupils are ranked by total aggregate (lower is better). Equal aggregates are
split by total marks (higher is better); pupils equal on both keep their input
order and share a position. The pupil after a tie block takes its 1-based place
in the ranked list, so three pupils tied with a fourth behind rank 1, 1, 1, 4.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

from skoolreports.core.divisions import division_for
from skoolreports.core.grading import grade_for
from skoolreports.core.models import Pupil, PupilResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PupilTotals:
    pupil: Pupil
    total_marks: int
    total_aggregate: int


def compute_totals(pupil: Pupil) -> PupilTotals:
    total_marks = 0
    total_aggregate = 0
    for mark in pupil.marks.values():
        total_marks += mark.marks
        # Points come from the raw mark, never from a stored value.
        total_aggregate += grade_for(mark.marks)[1]
    return PupilTotals(pupil=pupil, total_marks=total_marks, total_aggregate=total_aggregate)


def rank_key(totals: PupilTotals) -> Tuple[int, int]:
    return totals.total_aggregate, -totals.total_marks


def assign_positions(ranked: Sequence[PupilTotals]) -> List[int]:
    positions: List[int] = []
    previous: Optional[Tuple[int, int]] = None
    position = 0
    for index, totals in enumerate(ranked):
        current = (totals.total_aggregate, totals.total_marks)
        if current != previous:
            position = index + 1
        positions.append(position)
        previous = current
    return positions


def calculate_results(class_pupils: Iterable[Pupil]) -> List[Pupil]:
    pupils = list(class_pupils)
    if not pupils:
        return []

    class_names = {pupil.class_name for pupil in pupils}
    if len(class_names) > 1:
        raise ValueError(f"Pupils from more than one class: {', '.join(sorted(class_names))}")

    ranked = sorted((compute_totals(pupil) for pupil in pupils), key=rank_key)
    positions = assign_positions(ranked)

    results: List[Pupil] = []
    for totals, position in zip(ranked, positions):
        result = PupilResult(
            total_marks=totals.total_marks,
            total_aggregate=totals.total_aggregate,
            division=division_for(totals.total_aggregate),
            position=position,
        )
        results.append(replace(totals.pupil, result=result))

    logger.info(f"Calculated results for {len(results)} pupils in {pupils[0].class_name}")
    return results


def needs_calculation(pupils: Iterable[Pupil]) -> bool:
    """Classes page rule: a pupil with marks is still waiting for a result."""
    return any(pupil.marks and pupil.result is None for pupil in pupils)


def needs_ranking(pupils: Iterable[Pupil]) -> bool:
    """Report rule: any pupil without a position, marks or not."""
    return any(pupil.result is None for pupil in pupils)


def order_by_position(pupils: Iterable[Pupil]) -> List[Pupil]:
    """Display order: ranked pupils by position, then unranked pupils by name."""
    pupils = list(pupils)
    ranked = [p for p in pupils if p.result is not None]
    unranked = [p for p in pupils if p.result is None]
    ranked.sort(key=lambda p: p.result.position)
    unranked.sort(key=lambda p: p.name.lower())
    return ranked + unranked
