import logging
from functools import lru_cache
from typing import Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from skoolreports.config.logging_setup import configure_logging
from skoolreports.config.settings import settings
from skoolreports.core.divisions import division_scale
from skoolreports.core.grading import grading_scale
from skoolreports.services.repository import PupilNotFoundError, RepositoryError
from skoolreports.services.results_service import ResultsService, ResultsServiceError

configure_logging()
logger = logging.getLogger(__name__)

ClassName = Literal["P.4", "P.5", "P.6", "P.7"]
SubjectCode = Literal["MTC", "ENG", "SCIE", "SST"]


app = FastAPI(title="SkoolReports API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class MarkPayload(BaseModel):
    marks: int
    teacher_name: Optional[str] = None


class PupilPayload(BaseModel):
    name: str = Field(min_length=1)
    class_name: ClassName
    marks: Dict[SubjectCode, MarkPayload] = Field(default_factory=dict)


class PupilUpdatePayload(BaseModel):
    name: Optional[str] = None
    class_name: Optional[ClassName] = None


@lru_cache(maxsize=1)
def get_results_service() -> ResultsService:
    return ResultsService.from_settings()


def _http_error(exc: Exception) -> HTTPException:
    logger.warning(f"Request failed: {exc}")
    if isinstance(exc, PupilNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/grading-scale")
def get_grading_scale() -> Dict:
    return {"grades": grading_scale(), "divisions": division_scale()}


@app.get("/classes")
def list_classes(service: ResultsService = Depends(get_results_service)) -> List[Dict]:
    try:
        return service.classes_overview()
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc


@app.get("/pupils")
def list_pupils(
    class_name: Optional[ClassName] = None,
    service: ResultsService = Depends(get_results_service),
) -> List[Dict]:
    try:
        if class_name:
            pupils = service.repository.list_by_class(class_name)
        else:
            pupils = service.repository.list_pupils()
        return [pupil.to_dict() for pupil in pupils]
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.post("/pupils", status_code=status.HTTP_201_CREATED)
def create_pupil(payload: PupilPayload, service: ResultsService = Depends(get_results_service)) -> Dict:
    marks = {subject: (mark.marks, mark.teacher_name) for subject, mark in payload.marks.items()}
    try:
        pupil = service.repository.add_pupil(payload.name, payload.class_name, marks)
        return pupil.to_dict()
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.get("/pupils/{pupil_id}")
def get_pupil(pupil_id: str, service: ResultsService = Depends(get_results_service)) -> Dict:
    try:
        return service.repository.get_pupil(pupil_id).to_dict()
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.patch("/pupils/{pupil_id}")
def update_pupil(
    pupil_id: str,
    payload: PupilUpdatePayload,
    service: ResultsService = Depends(get_results_service),
) -> Dict:
    try:
        pupil = service.repository.update_pupil(pupil_id, name=payload.name, class_name=payload.class_name)
        return pupil.to_dict()
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.delete("/pupils/{pupil_id}")
def delete_pupil(pupil_id: str, service: ResultsService = Depends(get_results_service)) -> Dict[str, str]:
    try:
        service.repository.delete_pupil(pupil_id)
        return {"status": "deleted"}
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.put("/pupils/{pupil_id}/marks/{subject}")
def record_mark(
    pupil_id: str,
    subject: SubjectCode,
    payload: MarkPayload,
    service: ResultsService = Depends(get_results_service),
) -> Dict:
    try:
        pupil = service.repository.record_mark(pupil_id, subject, payload.marks, payload.teacher_name)
        return pupil.to_dict()
    except RepositoryError as exc:
        raise _http_error(exc) from exc


@app.post("/classes/{class_name}/results")
def calculate_class_results(
    class_name: ClassName,
    service: ResultsService = Depends(get_results_service),
) -> List[Dict]:
    try:
        return [pupil.to_dict() for pupil in service.calculate_class_results(class_name)]
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc


@app.get("/classes/{class_name}/results")
def get_class_results(
    class_name: ClassName,
    service: ResultsService = Depends(get_results_service),
) -> List[Dict]:
    try:
        return [pupil.to_dict() for pupil in service.class_results(class_name)]
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc


@app.get("/classes/{class_name}/summary")
def get_class_summary(
    class_name: ClassName,
    service: ResultsService = Depends(get_results_service),
) -> Dict:
    try:
        return service.class_summary(class_name).to_dict()
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc


@app.get("/reports/pupil/{pupil_id}")
def get_report_card(pupil_id: str, service: ResultsService = Depends(get_results_service)) -> Dict:
    try:
        return service.report_card(pupil_id)
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc


@app.get("/reports/class/{class_name}/cards")
def get_class_report_cards(
    class_name: ClassName,
    service: ResultsService = Depends(get_results_service),
) -> List[Dict]:
    try:
        return service.class_report_cards(class_name)
    except (RepositoryError, ResultsServiceError) as exc:
        raise _http_error(exc) from exc
