# rollcall/web/feed.py
"""
DashboardFeed - notifier cho live loop.

Giữ học sinh đang highlight, các sự kiện gần nhất và lỗi cuối cùng để web
dashboard / overlay đọc. Live loop ghi, Flask thread đọc -> mọi truy cập qua lock.
"""
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, Optional

logger = logging.getLogger(__name__)


def _format_ms(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000.0).strftime("%Y-%m-%d %H:%M:%S")


class DashboardFeed:
    """
    Notification collaborator.

    Args:
        max_events: Số sự kiện gần nhất giữ trong bộ nhớ
    """

    def __init__(self, max_events: int = 20):
        self._lock = threading.Lock()
        self._highlight: Optional[dict] = None
        self._events: Deque[dict] = deque(maxlen=max_events)
        self._last_error: Optional[str] = None
        self.profile: Optional[str] = None

    # === Notifier protocol ===

    def highlight(self, identity, score: float):
        with self._lock:
            self._highlight = {
                'id': identity.id,
                'name': identity.name,
                'group': identity.group,
                'score': round(float(score), 4),
            }
        logger.info(f"👤 {identity.name} ({identity.group}) - {score:.2f}")

    def clear_highlight(self):
        with self._lock:
            self._highlight = None

    def event_logged(self, event, identity):
        with self._lock:
            self._events.appendleft({
                'id': event.id,
                'student_id': identity.id,
                'name': identity.name,
                'group': identity.group,
                'timestamp': event.timestamp,
                'time': _format_ms(event.timestamp),
                'score': round(float(event.score), 4),
            })

    def error(self, message: str):
        with self._lock:
            self._last_error = message
        logger.error(f"❌ {message}")

    # === Readers ===

    @property
    def current_highlight(self) -> Optional[dict]:
        with self._lock:
            return dict(self._highlight) if self._highlight else None

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    def recent(self, limit: Optional[int] = None) -> list:
        with self._lock:
            events = list(self._events)
        return events if limit is None else events[:limit]

    def snapshot(self) -> dict:
        with self._lock:
            return {
                'profile': self.profile,
                'highlight': dict(self._highlight) if self._highlight else None,
                'recent': list(self._events),
                'error': self._last_error,
            }
