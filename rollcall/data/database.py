# rollcall/data/database.py
"""
Database SQLite cho học sinh đã đăng ký và sự kiện nhận diện.

Thread-safe cho multi-threaded access (live loop + web server): mỗi thao tác
mở một connection mới, thao tác ghi đi qua lock.

Store chỉ lưu, KHÔNG áp dụng cooldown (đó là việc của RecognitionDebouncer).
"""
import time
import uuid
import sqlite3
import logging
import threading
from typing import List, Optional, Tuple

import numpy as np

from ..core.errors import PersistenceError
from ..core.types import EnrolledIdentity, RecognitionEvent

logger = logging.getLogger(__name__)

DB_PATH = "rollcall.db"


def _encode_descriptor(descriptor) -> bytes:
    return np.asarray(descriptor, dtype=np.float32).ravel().tobytes()


def _decode_descriptor(blob) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32).copy()


def _row_to_identity(row) -> EnrolledIdentity:
    return EnrolledIdentity(
        id=row['id'],
        name=row['name'],
        group=row['student_group'],
        school_id=row['school_id'],
        descriptor=_decode_descriptor(row['descriptor']),
        photo=bytes(row['photo'] or b""),
        descriptor_model=row['descriptor_model'] or "",
        created_at=row['created_at'],
    )


def _row_to_event(row) -> RecognitionEvent:
    return RecognitionEvent(
        id=row['id'],
        identity_id=row['student_id'],
        school_id=row['school_id'],
        timestamp=row['timestamp'],
        score=row['score'] or 0.0,
    )


class AttendanceStore:
    """
    Persistence collaborator.

    Args:
        db_path: Đường dẫn file SQLite
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self._lock = threading.Lock()
        self.init_db()

    def get_connection(self):
        """
        Tạo kết nối MỚI mỗi lần gọi.
        SQLite hỗ trợ multiple readers, single writer.
        """
        conn = sqlite3.connect(self.db_path, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        """Khởi tạo bảng nếu chưa có."""
        try:
            conn = self.get_connection()
        except sqlite3.Error as e:
            raise PersistenceError(f"Không mở được database {self.db_path}: {e}") from e

        try:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    student_group TEXT NOT NULL,
                    school_id TEXT NOT NULL,
                    descriptor BLOB NOT NULL,
                    photo BLOB,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                    updated_at INTEGER DEFAULT 0
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS recognition_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT NOT NULL,
                    school_id TEXT NOT NULL,
                    timestamp INTEGER NOT NULL,
                    score REAL DEFAULT 0
                )
            ''')
            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_events_timestamp
                ON recognition_events (timestamp)
            ''')

            # Migration: DB cũ chưa có cột descriptor_model
            try:
                cursor.execute("ALTER TABLE students ADD COLUMN descriptor_model TEXT DEFAULT ''")
            except sqlite3.OperationalError:
                pass  # Cột đã tồn tại

            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Không khởi tạo được database: {e}") from e
        finally:
            conn.close()

    def _write(self, sql: str, params: tuple) -> int:
        """Chạy một câu lệnh ghi, trả về lastrowid."""
        with self._lock:
            try:
                conn = self.get_connection()
                try:
                    cursor = conn.execute(sql, params)
                    conn.commit()
                    return cursor.lastrowid
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.error(f"❌ Database write lỗi: {e}")
                raise PersistenceError(str(e)) from e

    def _read(self, sql: str, params: tuple = ()) -> list:
        try:
            conn = self.get_connection()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"❌ Database read lỗi: {e}")
            raise PersistenceError(str(e)) from e

    # === STUDENTS ===

    def enroll(
        self,
        name: str,
        group: str,
        school_id: str,
        descriptor,
        photo: bytes = b"",
        descriptor_model: str = ""
    ) -> EnrolledIdentity:
        """
        Lưu học sinh mới.

        Raises:
            PersistenceError: Dữ liệu không hợp lệ hoặc lỗi ghi
        """
        if not name or not name.strip():
            raise PersistenceError("Tên không được rỗng")
        if descriptor is None or np.asarray(descriptor).size == 0:
            raise PersistenceError("Descriptor rỗng")

        student_id = uuid.uuid4().hex
        self._write('''
            INSERT INTO students
                (id, name, student_group, school_id, descriptor, photo, descriptor_model, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            student_id, name.strip(), (group or "").strip(), school_id,
            _encode_descriptor(descriptor), sqlite3.Binary(photo or b""),
            descriptor_model, int(time.time() * 1000),
        ))
        logger.info(f"✅ Đã lưu học sinh: {name.strip()} ({student_id})")
        return self.get_identity(student_id)

    def get_identity(self, student_id: str) -> Optional[EnrolledIdentity]:
        rows = self._read("SELECT * FROM students WHERE id = ?", (student_id,))
        return _row_to_identity(rows[0]) if rows else None

    def remove_identity(self, student_id: str) -> bool:
        """Xóa học sinh cùng các sự kiện của học sinh đó."""
        with self._lock:
            try:
                conn = self.get_connection()
                try:
                    conn.execute("DELETE FROM recognition_events WHERE student_id = ?", (student_id,))
                    cursor = conn.execute("DELETE FROM students WHERE id = ?", (student_id,))
                    conn.commit()
                    removed = cursor.rowcount > 0
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e
        if removed:
            logger.info(f"🗑️ Đã xóa học sinh {student_id}")
        return removed

    def list_identities(self, school_id: Optional[str] = None) -> List[EnrolledIdentity]:
        if school_id is None:
            rows = self._read("SELECT * FROM students ORDER BY name")
        else:
            rows = self._read("SELECT * FROM students WHERE school_id = ? ORDER BY name", (school_id,))
        return [_row_to_identity(row) for row in rows]

    def load_gallery(self, descriptor_model: str) -> List[EnrolledIdentity]:
        """
        Gallery cho MatchEngine: chỉ giữ descriptor cùng model với extractor
        đang chạy. Entry khác model bị bỏ qua (có warning).
        """
        gallery = []
        dropped = []
        for identity in self.list_identities():
            if descriptor_model and identity.descriptor_model != descriptor_model:
                dropped.append(identity.name)
                continue
            gallery.append(identity)

        if dropped:
            logger.warning(
                f"⚠️ Bỏ qua {len(dropped)} học sinh có descriptor khác model "
                f"'{descriptor_model}': {', '.join(dropped)} (cần đăng ký lại)"
            )
        return gallery

    @property
    def version(self) -> Tuple[int, int]:
        """Thay đổi mỗi khi thêm / sửa / xóa học sinh (cho hot-reload)."""
        rows = self._read("SELECT COUNT(*) AS n, COALESCE(MAX(updated_at), 0) AS latest FROM students")
        return (rows[0]['n'], rows[0]['latest'])

    # === RECOGNITION EVENTS ===

    def log_recognition_event(
        self,
        identity_id: str,
        school_id: str,
        timestamp: int,
        score: float = 0.0
    ) -> RecognitionEvent:
        """
        Raises:
            PersistenceError: Lỗi ghi
        """
        event_id = self._write('''
            INSERT INTO recognition_events (student_id, school_id, timestamp, score)
            VALUES (?, ?, ?, ?)
        ''', (identity_id, school_id, int(timestamp), float(score)))
        return RecognitionEvent(
            id=event_id,
            identity_id=identity_id,
            school_id=school_id,
            timestamp=int(timestamp),
            score=float(score),
        )

    def recent_events(self, limit: int = 20) -> List[RecognitionEvent]:
        rows = self._read(
            "SELECT * FROM recognition_events ORDER BY timestamp DESC, id DESC LIMIT ?",
            (int(limit),)
        )
        return [_row_to_event(row) for row in rows]

