from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from skoolreports.core.divisions import DIVISION_1, DIVISIONS
from skoolreports.core.grading import GRADES
from skoolreports.core.models import SUBJECTS, Pupil


def _percent(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 1)


@dataclass(frozen=True)
class ClassSummary:
    class_name: str
    total_pupils: int
    pupils_with_results: int
    class_average: float
    subject_averages: Dict[str, float]
    division_counts: Dict[str, int]
    division_1_percent: float
    top_performer: Optional[Pupil]
    grade_counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
    grade_percents: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        top = self.top_performer
        return {
            "class_name": self.class_name,
            "total_pupils": self.total_pupils,
            "pupils_with_results": self.pupils_with_results,
            "class_average": self.class_average,
            "subject_averages": dict(self.subject_averages),
            "division_counts": dict(self.division_counts),
            "division_1_percent": self.division_1_percent,
            "top_performer": top.to_dict() if top is not None else None,
            "grade_counts": {s: dict(c) for s, c in self.grade_counts.items()},
            "grade_percents": {s: dict(p) for s, p in self.grade_percents.items()},
        }


def summarize_class(class_name: str, pupils: Iterable[Pupil]) -> ClassSummary:
    """Statistics for the class report.

    Averages cover only pupils with calculated results, and a missing subject
    mark counts as 0 in that subject's average. Grade percentages are taken
    against the whole class.
    """
    pupils = list(pupils)
    ranked: List[Pupil] = [p for p in pupils if p.result is not None]

    if ranked:
        class_average = round(sum(p.result.total_marks for p in ranked) / len(ranked), 1)
        subject_averages = {
            subject: round(
                sum(p.marks[subject].marks if subject in p.marks else 0 for p in ranked) / len(ranked),
                1,
            )
            for subject in SUBJECTS
        }
    else:
        class_average = 0.0
        subject_averages = {subject: 0.0 for subject in SUBJECTS}

    division_counts = {label: 0 for label in DIVISIONS}
    for p in ranked:
        division_counts[p.result.division] = division_counts.get(p.result.division, 0) + 1

    grade_counts: Dict[str, Dict[str, int]] = {s: {g: 0 for g in GRADES} for s in SUBJECTS}
    for p in pupils:
        for mark in p.marks.values():
            grade_counts[mark.subject][mark.grade] += 1

    grade_percents = {
        subject: {grade: _percent(count, len(pupils)) for grade, count in counts.items()}
        for subject, counts in grade_counts.items()
    }

    top_performer = next((p for p in ranked if p.result.position == 1), None)

    return ClassSummary(
        class_name=class_name,
        total_pupils=len(pupils),
        pupils_with_results=len(ranked),
        class_average=class_average,
        subject_averages=subject_averages,
        division_counts=division_counts,
        division_1_percent=_percent(division_counts[DIVISION_1], len(pupils)),
        top_performer=top_performer,
        grade_counts=grade_counts,
        grade_percents=grade_percents,
    )
