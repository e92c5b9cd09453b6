# rollcall/processing/display.py
"""
Display/UI Handler.

Vẽ overlay cho hai màn hình:
- Enrollment: box + feedback của quality gate + progress bar
- Live: box + tên / Unknown + banner highlight

Usage:
    display = DisplayHandler(overlay_enabled=True)

    display.draw_gate(frame, observation, result.feedback, gate.progress)
    display.draw_match(frame, box, match)
    key = display.show("Rollcall", frame)
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from .quality_gate import Feedback


class FaceStatus(Enum):
    """Trạng thái khuôn mặt trên overlay."""
    UNKNOWN = "unknown"           # Không khớp ai
    RECOGNIZED = "recognized"     # Đã nhận diện
    ADJUSTING = "adjusting"       # Gate chưa đạt, cần chỉnh tư thế
    HOLDING = "holding"           # Gate đạt, đang đếm frame


@dataclass
class ColorScheme:
    """Bảng màu (BGR)."""
    UNKNOWN: Tuple[int, int, int] = (0, 255, 255)      # Vàng
    RECOGNIZED: Tuple[int, int, int] = (0, 255, 0)     # Xanh lá
    ADJUSTING: Tuple[int, int, int] = (0, 165, 255)    # Cam
    HOLDING: Tuple[int, int, int] = (0, 255, 0)        # Xanh lá
    PROGRESS_BG: Tuple[int, int, int] = (100, 100, 100)
    PROGRESS_FG: Tuple[int, int, int] = (0, 255, 0)
    BANNER: Tuple[int, int, int] = (0, 255, 0)
    ERROR: Tuple[int, int, int] = (0, 0, 255)          # Đỏ


class DisplayHandler:
    """
    Vẽ overlay lên frame (in-place). `overlay_enabled=False` (headless) thì
    mọi hàm vẽ đều no-op.
    """

    def __init__(
        self,
        overlay_enabled: bool = True,
        colors: Optional[ColorScheme] = None,
        font: int = cv2.FONT_HERSHEY_SIMPLEX,
        font_scale: float = 0.6,
        thickness: int = 2
    ):
        self.enabled = overlay_enabled
        self.colors = colors or ColorScheme()
        self.font = font
        self.font_scale = font_scale
        self.thickness = thickness

    def draw_face(
        self,
        frame: np.ndarray,
        box: Tuple[int, int, int, int],
        status: FaceStatus = FaceStatus.UNKNOWN,
        label: Optional[str] = None
    ):
        if not self.enabled:
            return

        x, y, w, h = box
        color = getattr(self.colors, status.name, self.colors.UNKNOWN)
        cv2.rectangle(frame, (x, y), (x + w, y + h), color, self.thickness)
        if label:
            cv2.putText(frame, label, (x, max(15, y - 10)),
                        self.font, self.font_scale, color, self.thickness)

    def draw_progress(
        self,
        frame: np.ndarray,
        box: Tuple[int, int, int, int],
        progress: float
    ):
        """Progress bar ngay dưới box."""
        if not self.enabled:
            return

        x, y, w, h = box
        bar_height = 8
        bar_y = y + h + 5

        cv2.rectangle(frame, (x, bar_y), (x + w, bar_y + bar_height),
                      self.colors.PROGRESS_BG, -1)
        progress_width = int(w * min(max(progress, 0.0), 1.0))
        cv2.rectangle(frame, (x, bar_y), (x + progress_width, bar_y + bar_height),
                      self.colors.PROGRESS_FG, -1)

    def draw_gate(
        self,
        frame: np.ndarray,
        observation,
        feedback: Optional[Feedback],
        progress: float
    ):
        """Overlay enrollment: feedback ở góc trên + box/progress nếu có mặt."""
        if not self.enabled or feedback is None:
            return

        status = FaceStatus.HOLDING if feedback.is_ok else FaceStatus.ADJUSTING
        color = getattr(self.colors, status.name)
        cv2.putText(frame, feedback.value.upper(), (10, 30),
                    self.font, 0.8, color, self.thickness)

        if observation is not None:
            self.draw_face(frame, observation.box, status)
            self.draw_progress(frame, observation.box, progress)

    def draw_match(self, frame: np.ndarray, box, match):
        """Overlay live: tên + score hoặc Unknown."""
        if not self.enabled or box is None:
            return
        if match is not None and match.accepted:
            label = f"{match.identity.name} {match.score:.2f}"
            self.draw_face(frame, box, FaceStatus.RECOGNIZED, label)
        else:
            score = match.score if match is not None else 0.0
            self.draw_face(frame, box, FaceStatus.UNKNOWN, f"Unknown {score:.2f}")

    def draw_banner(self, frame: np.ndarray, text: str, error: bool = False):
        """Banner dưới cùng: học sinh vừa điểm danh hoặc lỗi."""
        if not self.enabled or not text:
            return
        h = frame.shape[0]
        color = self.colors.ERROR if error else self.colors.BANNER
        cv2.putText(frame, text, (10, h - 30), self.font, 0.8, color, self.thickness)

    def draw_stats(
        self,
        frame: np.ndarray,
        stats: Dict[str, Any],
        position: Optional[Tuple[int, int]] = None
    ):
        """Skip / ms / fps ở góc dưới trái."""
        if not self.enabled:
            return

        if position is None:
            position = (10, frame.shape[0] - 10)

        parts = []
        if 'profile' in stats:
            parts.append(str(stats['profile']))
        if 'current_skip' in stats:
            parts.append(f"Skip:{stats['current_skip']}")
        if 'avg_process_ms' in stats:
            parts.append(f"{stats['avg_process_ms']:.0f}ms")
        if 'effective_fps' in stats:
            parts.append(f"~{stats['effective_fps']:.1f}fps")

        cv2.putText(frame, " | ".join(parts), position,
                    self.font, 0.4, (200, 200, 200), 1)

    def show(self, window_name: str, frame: np.ndarray) -> int:
        """Hiển thị frame, trả về phím nhấn (-1 nếu headless / không nhấn)."""
        if not self.enabled:
            return -1
        cv2.imshow(window_name, frame)
        return cv2.waitKey(1) & 0xFF

    def destroy_windows(self):
        if self.enabled:
            cv2.destroyAllWindows()
