# rollcall/recognition/extractor.py
"""
Descriptor Extractor: frame -> danh sách FaceObservation.

FaceExtractor ghép ba model:
    UltraLightFaceDetector (box + confidence)
    FaceMeshLandmarker     (mesh cho yaw/pitch và căn mặt)
    FaceEmbedder           (descriptor)
"""
import logging
from abc import ABC, abstractmethod
from typing import List

import cv2
import numpy as np

from ..core.errors import TransientDetectionError
from ..core.profiles import ProfileParams
from ..core.types import FaceObservation
from .recognition import align_face

logger = logging.getLogger(__name__)


class DescriptorExtractor(ABC):
    """Interface mà QualityGate / LiveRecognizer dùng."""

    # Tên model descriptor - descriptor khác model không được so sánh
    descriptor_model: str = ""

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[FaceObservation]:
        """
        Raises:
            TransientDetectionError: Lỗi một lần, caller bỏ qua frame
        """

    @abstractmethod
    def close(self) -> None:
        """Giải phóng model."""


class FaceExtractor(DescriptorExtractor):
    """Extractor dựa trên TFLite + MediaPipe, cấu hình theo ProfileParams."""

    def __init__(self, detector, landmarker, embedder, params: ProfileParams):
        self.detector = detector
        self.landmarker = landmarker
        self.embedder = embedder
        self.params = params
        self.descriptor_model = embedder.model_name

    def detect(self, frame: np.ndarray) -> List[FaceObservation]:
        try:
            detections = self.detector.detect_faces(frame)
            observations = []
            for box, confidence in detections:
                landmarks = self.landmarker.landmarks(frame, box)
                observations.append(FaceObservation(
                    box=box,
                    confidence=confidence,
                    landmarks=landmarks,
                    descriptor=self._describe(frame, box, confidence, landmarks),
                ))
        except (cv2.error, RuntimeError, ValueError) as e:
            raise TransientDetectionError(str(e)) from e
        return observations

    def _describe(self, frame, box, confidence, landmarks):
        if confidence < self.params.min_descriptor_confidence:
            return None
        if self.params.rotation:
            face = align_face(frame, box, landmarks)
        else:
            x, y, w, h = box
            face = frame[y:y + h, x:x + w]
        return self.embedder.get_embedding(face)

    def close(self) -> None:
        if self.landmarker is not None:
            self.landmarker.close()
        self.detector = None
        self.landmarker = None
        self.embedder = None
        logger.debug("Extractor closed")
