# rollcall/processing/debounce.py
"""
Recognition Debouncer.

Chặn tín hiệu nhận diện trùng lặp ở hai mức thời gian:
- Frame: cùng một người liên tiếp chỉ highlight một lần
- History: mỗi người chỉ ghi sự kiện một lần trong cooldown (30s)

Usage:
    debouncer = RecognitionDebouncer(cooldown_ms=30000)

    for action in debouncer.on_observed(match.identity_id, now_ms):
        if action.kind is ActionKind.HIGHLIGHT:
            notifier.highlight(...)
        elif action.kind is ActionKind.LOG_EVENT:
            store.log_recognition_event(...)
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

COOLDOWN_MS = 30000
HIGHLIGHT_TIMEOUT = 5.0


class ActionKind(Enum):
    HIGHLIGHT = "highlight"
    LOG_EVENT = "log_event"


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    identity_id: str


class CooldownTracker:
    """
    Theo dõi cooldown giữa các lần ghi sự kiện (timestamp ms).
    """

    def __init__(self, cooldown_ms: int = COOLDOWN_MS):
        self.cooldown_ms = cooldown_ms
        self._last_event: Dict[str, int] = {}

    def is_in_cooldown(self, identity_id: str, now_ms: int) -> bool:
        if identity_id not in self._last_event:
            return False
        return now_ms - self._last_event[identity_id] < self.cooldown_ms

    def record_event(self, identity_id: str, now_ms: int):
        self._last_event[identity_id] = now_ms

    def forget_event(self, identity_id: str, now_ms: int):
        """Bỏ lần ghi tại now_ms (ghi thất bại), khôi phục không-cooldown."""
        if self._last_event.get(identity_id) == now_ms:
            del self._last_event[identity_id]

    def get_remaining_ms(self, identity_id: str, now_ms: int) -> int:
        if identity_id not in self._last_event:
            return 0
        return max(0, self.cooldown_ms - (now_ms - self._last_event[identity_id]))

    def reset(self):
        self._last_event.clear()


class RecognitionDebouncer:
    """
    Giữ RecognitionState: người vừa nhận diện (frame) + lần ghi cuối (history).

    Hai mức độc lập: HIGHLIGHT có thể bắn khi đang cooldown, còn LOG_EVENT
    luôn đi kèm một match.
    """

    def __init__(self, cooldown_ms: int = COOLDOWN_MS):
        self.cooldown = CooldownTracker(cooldown_ms)
        self._last_identity: Optional[str] = None

    @property
    def last_identity(self) -> Optional[str]:
        return self._last_identity

    def on_observed(self, identity_id: Optional[str], now_ms: int) -> List[Action]:
        """
        Xử lý kết quả match của một frame.

        Returns:
            Danh sách action (rỗng = không làm gì)
        """
        actions = []

        if identity_id != self._last_identity:
            self._last_identity = identity_id
            if identity_id is not None:
                actions.append(Action(ActionKind.HIGHLIGHT, identity_id))

        if identity_id is None:
            return actions

        if self.cooldown.is_in_cooldown(identity_id, now_ms):
            remaining = self.cooldown.get_remaining_ms(identity_id, now_ms)
            logger.debug(f"{identity_id} đang cooldown ({remaining}ms)")
        else:
            self.cooldown.record_event(identity_id, now_ms)
            actions.append(Action(ActionKind.LOG_EVENT, identity_id))

        return actions

    def clear_frame(self):
        """Chỉ quên người ở frame trước; lịch sử cooldown giữ nguyên."""
        self._last_identity = None

    def event_failed(self, identity_id: str, now_ms: int):
        """Sự kiện chưa được lưu: cho phép LOG_EVENT lại ở frame sau."""
        self.cooldown.forget_event(identity_id, now_ms)

    def reset(self):
        self._last_identity = None
        self.cooldown.reset()


class HighlightTimer:
    """
    Timer tự xóa highlight sau `timeout` giây.

    Mỗi lần `arm()` hủy timer cũ và khởi động timer mới.

    Args:
        on_expire: Callback khi hết thời gian
        timeout: Giây
        timer_factory: function(interval, callback) -> object có start()/cancel()
    """

    def __init__(
        self,
        on_expire: Callable[[], None],
        timeout: float = HIGHLIGHT_TIMEOUT,
        timer_factory: Callable = threading.Timer
    ):
        self.on_expire = on_expire
        self.timeout = timeout
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._timer is not None

    def arm(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.timeout, lambda: self._expire(timer))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def _expire(self, timer):
        with self._lock:
            # Timer cũ đã bị thay thế
            if self._timer is not timer:
                return
            self._timer = None
        self.on_expire()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
