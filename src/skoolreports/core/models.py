from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from skoolreports.core.grading import grade_for

SUBJECTS: tuple[str, ...] = ("MTC", "ENG", "SCIE", "SST")

SUBJECT_NAMES: Dict[str, str] = {
    "MTC": "Mathematics",
    "ENG": "English",
    "SCIE": "Science",
    "SST": "Social Studies",
}

CLASS_NAMES: tuple[str, ...] = ("P.4", "P.5", "P.6", "P.7")


def validate_subject(subject: str) -> str:
    code = str(subject).strip().upper()
    if code not in SUBJECTS:
        raise ValueError(f"Unknown subject: {subject}. Use one of {', '.join(SUBJECTS)}.")
    return code


def validate_class_name(class_name: str) -> str:
    value = str(class_name).strip().upper()
    if value not in CLASS_NAMES:
        raise ValueError(f"Unknown class: {class_name}. Use one of {', '.join(CLASS_NAMES)}.")
    return value


@dataclass(frozen=True)
class SubjectMark:
    subject: str
    marks: int
    teacher_name: Optional[str] = None

    @property
    def grade(self) -> str:
        return grade_for(self.marks)[0]

    @property
    def points(self) -> int:
        return grade_for(self.marks)[1]

    def to_dict(self) -> Dict:
        return {
            "subject": self.subject,
            "marks": self.marks,
            "grade": self.grade,
            "points": self.points,
            "teacher_name": self.teacher_name,
        }


@dataclass(frozen=True)
class PupilResult:
    total_marks: int
    total_aggregate: int
    division: str
    position: int

    def to_dict(self) -> Dict:
        return {
            "total_marks": self.total_marks,
            "total_aggregate": self.total_aggregate,
            "division": self.division,
            "position": self.position,
        }


def marks_by_subject(marks: Iterable[SubjectMark]) -> Dict[str, SubjectMark]:
    """Key marks by subject in subject order; a later mark for a subject wins."""
    latest = {mark.subject: mark for mark in marks}
    return {subject: latest[subject] for subject in SUBJECTS if subject in latest}


@dataclass
class Pupil:
    id: str
    name: str
    class_name: str
    marks: Dict[str, SubjectMark] = field(default_factory=dict)
    result: Optional[PupilResult] = None

    @property
    def is_ranked(self) -> bool:
        return self.result is not None

    def mark_for(self, subject: str) -> Optional[SubjectMark]:
        return self.marks.get(subject)

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "name": self.name,
            "class_name": self.class_name,
            "marks": [mark.to_dict() for mark in self.marks.values()],
            "total_marks": None,
            "total_aggregate": None,
            "division": None,
            "position": None,
        }
        if self.result is not None:
            data.update(self.result.to_dict())
        return data
