from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Protocol, Tuple, Union

from skoolreports.core.grading import clamp_marks
from skoolreports.core.models import Pupil, SubjectMark, validate_class_name, validate_subject

# subject -> raw marks, or subject -> (raw marks, teacher name)
MarksInput = Mapping[str, Union[int, Tuple[int, Optional[str]]]]


class RepositoryError(Exception):
    pass


class PupilNotFoundError(RepositoryError):
    pass


class PupilRepository(Protocol):
    """Pupil store.

    Every change that clears a class's results also bumps its revision;
    `save_class_results` writes nothing and returns False when the revision
    has moved on since the snapshot was read.
    """

    def list_pupils(self) -> List[Pupil]: ...

    def list_by_class(self, class_name: str) -> List[Pupil]: ...

    def get_pupil(self, pupil_id: str) -> Pupil: ...

    def add_pupil(self, name: str, class_name: str, marks: Optional[MarksInput] = None) -> Pupil: ...

    def update_pupil(self, pupil_id: str, name: Optional[str] = None, class_name: Optional[str] = None) -> Pupil: ...

    def delete_pupil(self, pupil_id: str) -> None: ...

    def record_mark(self, pupil_id: str, subject: str, marks: int, teacher_name: Optional[str] = None) -> Pupil: ...

    def save_results(self, pupils: List[Pupil]) -> None: ...

    def class_revision(self, class_name: str) -> int: ...

    def save_class_results(self, class_name: str, pupils: List[Pupil], revision: int) -> bool: ...

    def clear_results(self, class_name: str) -> None: ...


def clean_name(name: str) -> str:
    value = (name or "").strip()
    if not value:
        raise RepositoryError("Pupil name is required.")
    return value


def clean_class_name(class_name: str) -> str:
    try:
        return validate_class_name(class_name)
    except ValueError as exc:
        raise RepositoryError(str(exc)) from exc


def build_mark(subject: str, marks: int, teacher_name: Optional[str] = None) -> SubjectMark:
    """Entry-layer normalisation shared by every repository."""
    try:
        code = validate_subject(subject)
    except ValueError as exc:
        raise RepositoryError(str(exc)) from exc
    try:
        value = clamp_marks(marks)
    except (TypeError, ValueError) as exc:
        raise RepositoryError(f"Invalid marks for {code}: {marks!r}") from exc
    teacher = (teacher_name or "").strip() or None
    return SubjectMark(subject=code, marks=value, teacher_name=teacher)


def build_marks(marks: Optional[MarksInput]) -> Dict[str, SubjectMark]:
    built: Dict[str, SubjectMark] = {}
    for subject, value in (marks or {}).items():
        if isinstance(value, tuple):
            raw, teacher = value
        else:
            raw, teacher = value, None
        mark = build_mark(subject, raw, teacher)
        built[mark.subject] = mark
    return built
