import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases

from skoolreports.config.settings import settings
from skoolreports.core.models import Pupil, PupilResult, SubjectMark, marks_by_subject
from skoolreports.services.repository import (
    MarksInput,
    PupilNotFoundError,
    RepositoryError,
    build_mark,
    build_marks,
    clean_class_name,
    clean_name,
)

logger = logging.getLogger(__name__)

PAGE_LIMIT = 500

# Appwrite caps the number of values in one equal() filter.
ID_CHUNK = 100

RESULT_FIELDS = ("total_marks", "total_aggregate", "division", "position")


class AppwriteServiceError(RepositoryError):
    pass


def _chunks(values: List[str], size: int) -> Iterator[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class AppwriteService:
    """Pupil repository backed by two Appwrite collections: pupils and marks."""

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        pupils_collection_id: str,
        marks_collection_id: str,
        db: Optional[Databases] = None,
    ) -> None:
        if not endpoint:
            raise AppwriteServiceError("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise AppwriteServiceError("Missing APPWRITE_PROJECT_ID in environment")
        if not api_key:
            raise AppwriteServiceError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise AppwriteServiceError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.pupils_collection_id = pupils_collection_id
        self.marks_collection_id = marks_collection_id

        if db is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            db = Databases(client)
        self.db = db
        self._lock = threading.RLock()
        # Process-local: revisions guard saves made through this service instance.
        self._revisions: Dict[str, int] = {}

    @classmethod
    def from_settings(cls) -> "AppwriteService":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            pupils_collection_id=settings.appwrite_pupils_collection_id,
            marks_collection_id=settings.appwrite_marks_collection_id,
        )

    @staticmethod
    def _to_iso(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    def _list_documents(self, collection_id: str, queries: List[str]) -> List[Dict]:
        try:
            result = self.db.list_documents(self.database_id, collection_id, queries=queries)
            return list(result.get("documents", []))
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    def _list_all(self, collection_id: str, queries: List[str]) -> List[Dict]:
        """Follow the cursor until a page comes back short."""
        documents: List[Dict] = []
        cursor: Optional[str] = None
        while True:
            page_queries = [*queries, Query.limit(PAGE_LIMIT)]
            if cursor is not None:
                page_queries.append(Query.cursor_after(cursor))
            page = self._list_documents(collection_id, page_queries)
            documents.extend(page)
            if len(page) < PAGE_LIMIT:
                return documents
            cursor = page[-1]["$id"]

    def _create_document(self, collection_id: str, data: Dict, document_id: Optional[str] = None) -> Dict:
        try:
            return self.db.create_document(
                self.database_id,
                collection_id,
                document_id or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    def _get_document(self, collection_id: str, document_id: str) -> Dict:
        try:
            return self.db.get_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            if getattr(exc, "code", None) == 404:
                raise PupilNotFoundError(f"Pupil not found: {document_id}") from exc
            raise AppwriteServiceError(str(exc)) from exc

    def _update_document(self, collection_id: str, document_id: str, data: Dict) -> Dict:
        try:
            return self.db.update_document(self.database_id, collection_id, document_id, data)
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    def _delete_document(self, collection_id: str, document_id: str) -> None:
        try:
            self.db.delete_document(self.database_id, collection_id, document_id)
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    def _find_first(self, collection_id: str, queries: List[str]) -> Optional[Dict]:
        docs = self._list_documents(collection_id, [*queries, Query.limit(1)])
        if not docs:
            return None
        return docs[0]

    @staticmethod
    def _doc_result(doc: Dict) -> Optional[PupilResult]:
        if any(doc.get(name) is None for name in RESULT_FIELDS):
            return None
        return PupilResult(
            total_marks=int(doc["total_marks"]),
            total_aggregate=int(doc["total_aggregate"]),
            division=str(doc["division"]),
            position=int(doc["position"]),
        )

    def _marks_for(self, pupil_ids: List[str]) -> Dict[str, List[SubjectMark]]:
        grouped: Dict[str, List[SubjectMark]] = {pid: [] for pid in pupil_ids}
        docs: List[Dict] = []
        for chunk in _chunks(pupil_ids, ID_CHUNK):
            docs.extend(self._list_all(self.marks_collection_id, [Query.equal("pupil_id", chunk)]))
        for doc in docs:
            pupil_id = doc.get("pupil_id")
            if pupil_id not in grouped:
                continue
            try:
                marks = int(doc.get("marks", 0))
            except (TypeError, ValueError):
                marks = 0
            # Stored grade/points are ignored; SubjectMark derives them from marks.
            grouped[pupil_id].append(
                SubjectMark(subject=str(doc.get("subject", "")), marks=marks, teacher_name=doc.get("teacher_name"))
            )
        return grouped

    def _to_pupils(self, docs: List[Dict]) -> List[Pupil]:
        marks = self._marks_for([doc["$id"] for doc in docs])
        return [
            Pupil(
                id=doc["$id"],
                name=str(doc.get("name", "")),
                class_name=str(doc.get("class_name", "")),
                marks=marks_by_subject(marks.get(doc["$id"], [])),
                result=self._doc_result(doc),
            )
            for doc in docs
        ]

    def list_pupils(self) -> List[Pupil]:
        docs = self._list_all(
            self.pupils_collection_id,
            [Query.order_asc("class_name"), Query.order_asc("$createdAt")],
        )
        return self._to_pupils(docs)

    def list_by_class(self, class_name: str) -> List[Pupil]:
        class_name = clean_class_name(class_name)
        docs = self._list_all(
            self.pupils_collection_id,
            [Query.equal("class_name", [class_name]), Query.order_asc("$createdAt")],
        )
        return self._to_pupils(docs)

    def get_pupil(self, pupil_id: str) -> Pupil:
        doc = self._get_document(self.pupils_collection_id, pupil_id)
        return self._to_pupils([doc])[0]

    def add_pupil(self, name: str, class_name: str, marks: Optional[MarksInput] = None) -> Pupil:
        name = clean_name(name)
        class_name = clean_class_name(class_name)
        built = build_marks(marks)
        doc = self._create_document(
            self.pupils_collection_id,
            {
                "name": name,
                "class_name": class_name,
                "created_at": self._to_iso(datetime.now(timezone.utc)),
                **{field: None for field in RESULT_FIELDS},
            },
        )
        for mark in built.values():
            self._upsert_mark(doc["$id"], mark)
        self.clear_results(class_name)
        logger.debug(f"Added pupil {doc['$id']} to {class_name}")
        return self.get_pupil(doc["$id"])

    def update_pupil(self, pupil_id: str, name: Optional[str] = None, class_name: Optional[str] = None) -> Pupil:
        current = self.get_pupil(pupil_id)
        data: Dict = {}
        if name is not None:
            data["name"] = clean_name(name)
        if class_name is not None:
            data["class_name"] = clean_class_name(class_name)
        if data:
            self._update_document(self.pupils_collection_id, pupil_id, data)
        new_class = data.get("class_name", current.class_name)
        if new_class != current.class_name:
            self.clear_results(current.class_name)
            self.clear_results(new_class)
        return self.get_pupil(pupil_id)

    def delete_pupil(self, pupil_id: str) -> None:
        current = self.get_pupil(pupil_id)
        docs = self._list_all(self.marks_collection_id, [Query.equal("pupil_id", [pupil_id])])
        for doc in docs:
            self._delete_document(self.marks_collection_id, doc["$id"])
        self._delete_document(self.pupils_collection_id, pupil_id)
        self.clear_results(current.class_name)

    def _upsert_mark(self, pupil_id: str, mark: SubjectMark) -> None:
        data = {
            "pupil_id": pupil_id,
            "subject": mark.subject,
            "marks": mark.marks,
            "grade": mark.grade,
            "points": mark.points,
            "teacher_name": mark.teacher_name,
        }
        existing = self._find_first(
            self.marks_collection_id,
            [Query.equal("pupil_id", [pupil_id]), Query.equal("subject", [mark.subject])],
        )
        if existing:
            self._update_document(self.marks_collection_id, existing["$id"], data)
        else:
            self._create_document(self.marks_collection_id, data)

    def record_mark(self, pupil_id: str, subject: str, marks: int, teacher_name: Optional[str] = None) -> Pupil:
        mark = build_mark(subject, marks, teacher_name)
        current = self.get_pupil(pupil_id)
        self._upsert_mark(pupil_id, mark)
        self.clear_results(current.class_name)
        return self.get_pupil(pupil_id)

    def save_results(self, pupils: List[Pupil]) -> None:
        for pupil in pupils:
            if pupil.result is None:
                data = {field: None for field in RESULT_FIELDS}
            else:
                data = pupil.result.to_dict()
            self._update_document(self.pupils_collection_id, pupil.id, data)
        logger.debug(f"Saved results for {len(pupils)} pupils")

    def class_revision(self, class_name: str) -> int:
        class_name = clean_class_name(class_name)
        with self._lock:
            return self._revisions.get(class_name, 0)

    def save_class_results(self, class_name: str, pupils: List[Pupil], revision: int) -> bool:
        class_name = clean_class_name(class_name)
        with self._lock:
            if self._revisions.get(class_name, 0) != revision:
                logger.debug(f"Discarded results for {class_name}: revision {revision} is out of date")
                return False
            self.save_results(pupils)
        return True

    def clear_results(self, class_name: str) -> None:
        class_name = clean_class_name(class_name)
        with self._lock:
            self._revisions[class_name] = self._revisions.get(class_name, 0) + 1
            docs = self._list_all(self.pupils_collection_id, [Query.equal("class_name", [class_name])])
            cleared = {field: None for field in RESULT_FIELDS}
            for doc in docs:
                if any(doc.get(name) is not None for name in RESULT_FIELDS):
                    self._update_document(self.pupils_collection_id, doc["$id"], cleared)
