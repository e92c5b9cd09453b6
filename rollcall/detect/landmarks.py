# rollcall/detect/landmarks.py
"""
Face mesh landmarks (MediaPipe FaceLandmarker, 478 điểm x/y/z).

Chạy trên crop của từng box từ detector, trả về tọa độ pixel trong frame gốc
(z được scale theo chiều rộng crop, cùng đơn vị với x).
"""
import os
import logging
from typing import Tuple

import cv2
import numpy as np

from ..core.errors import ModelLoadError

logger = logging.getLogger(__name__)

CROP_MARGIN = 0.25  # Mở rộng box 25% mỗi phía để mesh không bị cắt


class FaceMeshLandmarker:
    """Wrapper quanh mediapipe.tasks FaceLandmarker (IMAGE mode)."""

    def __init__(self, model_path: str, min_confidence: float = 0.5):
        if not os.path.exists(model_path):
            raise ModelLoadError(f"Không tìm thấy landmark model: {model_path}")

        import mediapipe as mp
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision

        self._mp = mp
        options = vision.FaceLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=model_path),
            running_mode=vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=min_confidence,
            min_face_presence_confidence=min_confidence,
        )
        try:
            self._landmarker = vision.FaceLandmarker.create_from_options(options)
        except (RuntimeError, ValueError) as e:
            raise ModelLoadError(f"Không load được landmark model {model_path}: {e}") from e

        logger.info(f"[Landmarks] Loaded: {model_path}")

    def landmarks(self, frame: np.ndarray, box: Tuple[int, int, int, int]) -> np.ndarray:
        """
        Face mesh cho một box.

        Returns:
            (N, 3) float32, hoặc mảng rỗng (0, 3) nếu không tìm thấy mesh
        """
        crop, (ox, oy) = expand_crop(frame, box, CROP_MARGIN)
        if crop.size == 0:
            return np.empty((0, 3), dtype=np.float32)

        ch, cw = crop.shape[:2]
        rgb = cv2.cvtColor(crop, cv2.COLOR_BGR2RGB)
        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
        result = self._landmarker.detect(image)
        if not result.face_landmarks:
            return np.empty((0, 3), dtype=np.float32)

        points = np.array(
            [[p.x, p.y, p.z] for p in result.face_landmarks[0]],
            dtype=np.float32
        )
        points[:, 0] = points[:, 0] * cw + ox
        points[:, 1] = points[:, 1] * ch + oy
        points[:, 2] = points[:, 2] * cw
        return points

    def close(self):
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None


def expand_crop(frame, box, margin):
    """
    Cắt vùng box mở rộng `margin` mỗi phía, clip theo frame.

    Returns:
        (crop, (offset_x, offset_y))
    """
    h_img, w_img = frame.shape[:2]
    x, y, w, h = box
    dx, dy = int(w * margin), int(h * margin)
    x0, y0 = max(0, x - dx), max(0, y - dy)
    x1, y1 = min(w_img, x + w + dx), min(h_img, y + h + dy)
    return frame[y0:y1, x0:x1], (x0, y0)
