from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

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


class Storage:
    """SQLite pupil repository."""

    def __init__(self, db_path: str = "skoolreports.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._init_schema()

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS pupils (
              seq INTEGER PRIMARY KEY AUTOINCREMENT,
              id TEXT UNIQUE NOT NULL,
              name TEXT NOT NULL,
              class_name TEXT NOT NULL,
              total_marks INTEGER,
              total_aggregate INTEGER,
              division TEXT,
              position INTEGER,
              created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS marks (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              pupil_id TEXT NOT NULL,
              subject TEXT NOT NULL,
              marks INTEGER NOT NULL,
              grade TEXT NOT NULL,
              points INTEGER NOT NULL,
              teacher_name TEXT,
              updated_at TEXT NOT NULL,
              UNIQUE(pupil_id, subject),
              FOREIGN KEY(pupil_id) REFERENCES pupils(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS class_revisions (
              class_name TEXT PRIMARY KEY,
              revision INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_pupils_class ON pupils(class_name);
            """
        )
        self.conn.commit()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def close(self) -> None:
        self.conn.close()

    def _load_marks(self, pupil_ids: Iterable[str]) -> Dict[str, List[SubjectMark]]:
        ids = list(pupil_ids)
        grouped: Dict[str, List[SubjectMark]] = {pid: [] for pid in ids}
        if not ids:
            return grouped
        placeholders = ",".join("?" for _ in ids)
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT pupil_id, subject, marks, teacher_name FROM marks WHERE pupil_id IN ({placeholders})",
            ids,
        )
        for row in cur.fetchall():
            # Grade and points are re-derived from the raw marks on read.
            grouped[row["pupil_id"]].append(
                SubjectMark(subject=row["subject"], marks=int(row["marks"]), teacher_name=row["teacher_name"])
            )
        return grouped

    @staticmethod
    def _row_result(row: sqlite3.Row) -> Optional[PupilResult]:
        values = (row["total_marks"], row["total_aggregate"], row["division"], row["position"])
        if any(v is None for v in values):
            return None
        return PupilResult(
            total_marks=int(row["total_marks"]),
            total_aggregate=int(row["total_aggregate"]),
            division=row["division"],
            position=int(row["position"]),
        )

    def _to_pupils(self, rows: List[sqlite3.Row]) -> List[Pupil]:
        marks = self._load_marks(row["id"] for row in rows)
        pupils = []
        for row in rows:
            pupil = Pupil(
                id=row["id"],
                name=row["name"],
                class_name=row["class_name"],
                marks=marks_by_subject(marks.get(row["id"], [])),
                result=self._row_result(row),
            )
            pupils.append(pupil)
        return pupils

    def list_pupils(self) -> List[Pupil]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM pupils ORDER BY class_name, seq")
            return self._to_pupils(list(cur.fetchall()))

    def list_by_class(self, class_name: str) -> List[Pupil]:
        class_name = clean_class_name(class_name)
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM pupils WHERE class_name=? ORDER BY seq", (class_name,))
            return self._to_pupils(list(cur.fetchall()))

    def get_pupil(self, pupil_id: str) -> Pupil:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("SELECT * FROM pupils WHERE id=?", (pupil_id,))
            row = cur.fetchone()
            if not row:
                raise PupilNotFoundError(f"Pupil not found: {pupil_id}")
            return self._to_pupils([row])[0]

    def add_pupil(self, name: str, class_name: str, marks: Optional[MarksInput] = None) -> Pupil:
        name = clean_name(name)
        class_name = clean_class_name(class_name)
        built = build_marks(marks)
        pupil_id = uuid.uuid4().hex
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT INTO pupils(id, name, class_name, created_at) VALUES(?,?,?,?)",
                    (pupil_id, name, class_name, self._now()),
                )
                for mark in built.values():
                    self._upsert_mark(pupil_id, mark)
                self._clear_class(class_name)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        logger.debug(f"Added pupil {pupil_id} to {class_name}")
        return self.get_pupil(pupil_id)

    def update_pupil(self, pupil_id: str, name: Optional[str] = None, class_name: Optional[str] = None) -> Pupil:
        current = self.get_pupil(pupil_id)
        new_name = clean_name(name) if name is not None else current.name
        new_class = clean_class_name(class_name) if class_name is not None else current.class_name
        with self._lock:
            try:
                self.conn.execute("UPDATE pupils SET name=?, class_name=? WHERE id=?", (new_name, new_class, pupil_id))
                if new_class != current.class_name:
                    self._clear_class(current.class_name)
                    self._clear_class(new_class)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        return self.get_pupil(pupil_id)

    def delete_pupil(self, pupil_id: str) -> None:
        current = self.get_pupil(pupil_id)
        with self._lock:
            try:
                self.conn.execute("DELETE FROM marks WHERE pupil_id=?", (pupil_id,))
                self.conn.execute("DELETE FROM pupils WHERE id=?", (pupil_id,))
                self._clear_class(current.class_name)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        logger.debug(f"Deleted pupil {pupil_id} from {current.class_name}")

    def _upsert_mark(self, pupil_id: str, mark: SubjectMark) -> None:
        self.conn.execute(
            """INSERT INTO marks(pupil_id, subject, marks, grade, points, teacher_name, updated_at)
               VALUES(?,?,?,?,?,?,?)
               ON CONFLICT(pupil_id, subject) DO UPDATE SET
                   marks=excluded.marks,
                   grade=excluded.grade,
                   points=excluded.points,
                   teacher_name=excluded.teacher_name,
                   updated_at=excluded.updated_at""",
            (pupil_id, mark.subject, mark.marks, mark.grade, mark.points, mark.teacher_name, self._now()),
        )

    def record_mark(self, pupil_id: str, subject: str, marks: int, teacher_name: Optional[str] = None) -> Pupil:
        mark = build_mark(subject, marks, teacher_name)
        current = self.get_pupil(pupil_id)
        with self._lock:
            try:
                self._upsert_mark(pupil_id, mark)
                self._clear_class(current.class_name)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        logger.debug(f"Recorded {mark.subject}={mark.marks} for pupil {pupil_id}")
        return self.get_pupil(pupil_id)

    def _write_results(self, pupils: List[Pupil]) -> None:
        for pupil in pupils:
            result = pupil.result
            if result is None:
                self.conn.execute(
                    """UPDATE pupils SET total_marks=NULL, total_aggregate=NULL, division=NULL, position=NULL
                       WHERE id=?""",
                    (pupil.id,),
                )
                continue
            self.conn.execute(
                """UPDATE pupils SET total_marks=?, total_aggregate=?, division=?, position=?
                   WHERE id=?""",
                (result.total_marks, result.total_aggregate, result.division, result.position, pupil.id),
            )

    def save_results(self, pupils: List[Pupil]) -> None:
        with self._lock:
            try:
                self._write_results(pupils)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        logger.debug(f"Saved results for {len(pupils)} pupils")

    def _revision(self, class_name: str) -> int:
        row = self.conn.execute(
            "SELECT revision FROM class_revisions WHERE class_name=?", (class_name,)
        ).fetchone()
        return int(row["revision"]) if row else 0

    def class_revision(self, class_name: str) -> int:
        class_name = clean_class_name(class_name)
        with self._lock:
            return self._revision(class_name)

    def save_class_results(self, class_name: str, pupils: List[Pupil], revision: int) -> bool:
        class_name = clean_class_name(class_name)
        with self._lock:
            try:
                # Holds the write lock across the revision check and the writes.
                self.conn.execute("BEGIN IMMEDIATE")
                if self._revision(class_name) != revision:
                    self.conn.rollback()
                    logger.debug(f"Discarded results for {class_name}: revision {revision} is out of date")
                    return False
                self._write_results(pupils)
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise RepositoryError(str(exc)) from exc
        logger.debug(f"Saved results for {len(pupils)} pupils in {class_name} at revision {revision}")
        return True

    def _clear_class(self, class_name: str) -> None:
        self.conn.execute(
            """UPDATE pupils SET total_marks=NULL, total_aggregate=NULL, division=NULL, position=NULL
               WHERE class_name=?""",
            (class_name,),
        )
        self.conn.execute(
            """INSERT INTO class_revisions(class_name, revision) VALUES(?, 1)
               ON CONFLICT(class_name) DO UPDATE SET revision=revision+1""",
            (class_name,),
        )

    def clear_results(self, class_name: str) -> None:
        class_name = clean_class_name(class_name)
        with self._lock:
            self._clear_class(class_name)
            self.conn.commit()

