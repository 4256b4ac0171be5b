from __future__ import annotations

import logging
from typing import Dict, List

from skoolreports.config.settings import settings
from skoolreports.core.divisions import DIVISIONS
from skoolreports.core.models import CLASS_NAMES, Pupil, validate_class_name
from skoolreports.core.results import calculate_results, needs_calculation, needs_ranking, order_by_position
from skoolreports.core.summary import ClassSummary, summarize_class
from skoolreports.services.appwrite_service import AppwriteService
from skoolreports.services.repository import PupilRepository
from skoolreports.services.storage import Storage

logger = logging.getLogger(__name__)

MAX_CALCULATION_ATTEMPTS = 3


class ResultsServiceError(Exception):
    pass


def build_repository() -> PupilRepository:
    backend = settings.storage_backend
    if backend == "sqlite":
        return Storage(settings.database_path)
    if backend == "appwrite":
        return AppwriteService.from_settings()
    raise ResultsServiceError(f"Unsupported storage backend: {backend}. Use sqlite or appwrite.")


class ResultsService:
    def __init__(self, repository: PupilRepository) -> None:
        self.repository = repository

    @classmethod
    def from_settings(cls) -> "ResultsService":
        return cls(build_repository())

    @staticmethod
    def _class_name(class_name: str) -> str:
        try:
            return validate_class_name(class_name)
        except ValueError as exc:
            raise ResultsServiceError(str(exc)) from exc

    def calculate_class_results(self, class_name: str) -> List[Pupil]:
        """Rank a class from a snapshot; a snapshot overtaken by an edit is recalculated."""
        class_name = self._class_name(class_name)
        for attempt in range(1, MAX_CALCULATION_ATTEMPTS + 1):
            revision = self.repository.class_revision(class_name)
            pupils = self.repository.list_by_class(class_name)
            ranked = calculate_results(pupils)
            if self.repository.save_class_results(class_name, ranked, revision):
                return ranked
            logger.info(f"{class_name} changed while calculating (attempt {attempt}); starting again")
        raise ResultsServiceError(f"{class_name} kept changing during calculation; results were not saved.")

    def class_results(self, class_name: str) -> List[Pupil]:
        class_name = self._class_name(class_name)
        pupils = self.repository.list_by_class(class_name)
        if needs_ranking(pupils):
            logger.info(f"Results for {class_name} are missing or stale; recalculating")
            pupils = self.calculate_class_results(class_name)
        return order_by_position(pupils)

    def refresh_all_classes(self) -> Dict[str, int]:
        refreshed: Dict[str, int] = {}
        for class_name in CLASS_NAMES:
            pupils = self.repository.list_by_class(class_name)
            if needs_calculation(pupils):
                refreshed[class_name] = len(self.calculate_class_results(class_name))
        return refreshed

    def class_summary(self, class_name: str) -> ClassSummary:
        class_name = self._class_name(class_name)
        return summarize_class(class_name, self.class_results(class_name))

    def classes_overview(self) -> List[Dict]:
        overview = []
        for class_name in CLASS_NAMES:
            pupils = self.repository.list_by_class(class_name)
            divisions = {label: 0 for label in DIVISIONS}
            for pupil in pupils:
                if pupil.result is not None:
                    divisions[pupil.result.division] = divisions.get(pupil.result.division, 0) + 1
            overview.append(
                {
                    "class_name": class_name,
                    "pupil_count": len(pupils),
                    "needs_calculation": needs_calculation(pupils),
                    "divisions": divisions,
                }
            )
        return overview

    @staticmethod
    def _school_header() -> Dict[str, str]:
        return {
            "name": settings.school_name,
            "location": settings.school_location,
            "academic_year": settings.academic_year,
            "term": settings.academic_term,
        }

    def report_card(self, pupil_id: str) -> Dict:
        pupil = self.repository.get_pupil(pupil_id)
        class_pupils = self.class_results(pupil.class_name)
        current = next((p for p in class_pupils if p.id == pupil.id), pupil)
        return {
            "school": self._school_header(),
            "pupil": current.to_dict(),
            "class_size": len(class_pupils),
        }

    def class_report_cards(self, class_name: str) -> List[Dict]:
        """Report cards for a whole class in position order, from one read of the class."""
        class_pupils = self.class_results(class_name)
        school = self._school_header()
        return [
            {"school": dict(school), "pupil": pupil.to_dict(), "class_size": len(class_pupils)}
            for pupil in class_pupils
        ]
