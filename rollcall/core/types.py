# rollcall/core/types.py
"""
Các kiểu dữ liệu dùng chung giữa enrollment và recognition.

- FaceObservation: một khuôn mặt trong một frame (ephemeral)
- EnrolledIdentity: học sinh đã đăng ký (gallery entry)
- RecognitionEvent: sự kiện nhận diện đã ghi vào database
"""
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


@dataclass
class FaceObservation:
    """
    Một khuôn mặt được extractor phát hiện trong frame hiện tại.

    Attributes:
        box: (x, y, width, height) theo pixel
        confidence: Điểm tin cậy của detector (0-1)
        landmarks: Face mesh (N, 3) - x, y theo pixel, z theo độ sâu tương đối
        descriptor: Embedding đã L2 normalize, None nếu không trích xuất được
    """
    box: Tuple[int, int, int, int]
    confidence: float
    landmarks: np.ndarray = field(default_factory=lambda: np.empty((0, 3), dtype=np.float32))
    descriptor: Optional[np.ndarray] = None

    @property
    def width(self) -> int:
        return self.box[2]


@dataclass(frozen=True)
class EnrolledIdentity:
    """Học sinh đã đăng ký. Immutable sau khi lưu."""
    id: str
    name: str
    group: str
    school_id: str
    descriptor: np.ndarray
    photo: bytes = b""
    descriptor_model: str = ""
    created_at: Optional[str] = None


@dataclass(frozen=True)
class RecognitionEvent:
    """Một lần nhận diện đã được ghi (sau cooldown)."""
    id: int
    identity_id: str
    school_id: str
    timestamp: int          # milliseconds
    score: float = 0.0
