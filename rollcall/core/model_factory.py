# rollcall/core/model_factory.py
"""
Factory tạo extractor và service quản lý vòng đời của nó.

Mỗi thời điểm chỉ có tối đa MỘT extractor sống (theo profile). Đổi profile
thì dispose instance cũ trước rồi mới tạo instance mới.

Usage:
    service = ExtractorService(lambda profile: create_extractor(profile, settings))
    extractor = service.init("default")
    ...
    service.switch_profile("lowlight")
    service.dispose()
"""
import logging
import threading
from typing import Callable, Optional, Union

from .errors import ModelLoadError
from .profiles import DetectorProfile, ModelVariant, get_profile_params, resolve_profile

logger = logging.getLogger(__name__)


def create_extractor(profile, settings):
    """
    Tạo FaceExtractor cho một profile.

    Raises:
        ModelLoadError: Thiếu runtime hoặc file model
    """
    from ..detect.detect import UltraLightFaceDetector
    from ..detect.landmarks import FaceMeshLandmarker
    from ..recognition.recognition import FaceEmbedder
    from ..recognition.extractor import FaceExtractor

    params = get_profile_params(profile)
    if params.model_variant is ModelVariant.INT8:
        detection_model = settings.DETECTION_MODEL_INT8
    else:
        detection_model = settings.DETECTION_MODEL_FLOAT32

    detector = UltraLightFaceDetector(
        settings.resolve_path(detection_model),
        conf_threshold=params.min_detection_confidence,
        max_faces=params.max_faces,
        num_threads=settings.TFLITE_NUM_THREADS,
    )
    landmarker = FaceMeshLandmarker(
        settings.resolve_path(settings.LANDMARK_MODEL),
        min_confidence=params.min_detection_confidence,
    )
    embedder = FaceEmbedder(
        settings.resolve_path(settings.RECOGNITION_MODEL),
        enable_histogram_eq=params.equalize,
        num_threads=settings.TFLITE_NUM_THREADS,
    )
    return FaceExtractor(detector, landmarker, embedder, params)


class ExtractorService:
    """
    Sở hữu extractor đang hoạt động, keyed theo profile.

    Args:
        factory: function(DetectorProfile) -> DescriptorExtractor
    """

    def __init__(self, factory: Callable):
        self._factory = factory
        self._lock = threading.Lock()
        self._extractor = None
        self._profile: Optional[DetectorProfile] = None

    @property
    def extractor(self):
        return self._extractor

    @property
    def current_profile(self) -> Optional[DetectorProfile]:
        return self._profile

    def init(self, profile: Union[str, DetectorProfile]):
        """Lấy extractor cho profile; tạo mới nếu chưa có hoặc khác profile."""
        profile = resolve_profile(profile)
        with self._lock:
            if self._extractor is not None and self._profile is profile:
                return self._extractor
            return self._switch_locked(profile)

    def switch_profile(self, profile: Union[str, DetectorProfile]):
        """Dispose instance hiện tại rồi tạo instance cho profile mới."""
        profile = resolve_profile(profile)
        with self._lock:
            return self._switch_locked(profile)

    def _switch_locked(self, profile: DetectorProfile):
        self._dispose_locked()

        logger.info(f"🧠 Tạo extractor với profile: {profile.value}")
        try:
            extractor = self._factory(profile)
        except ModelLoadError:
            logger.error(f"❌ Không load được extractor cho profile {profile.value}")
            raise
        except (OSError, RuntimeError, ValueError) as e:
            logger.error(f"❌ Không load được extractor cho profile {profile.value}: {e}")
            raise ModelLoadError(str(e)) from e

        self._extractor = extractor
        self._profile = profile
        return extractor

    def dispose(self):
        """Giải phóng extractor hiện tại (nếu có)."""
        with self._lock:
            self._dispose_locked()

    def _dispose_locked(self):
        if self._extractor is None:
            return
        old_profile = self._profile
        extractor = self._extractor
        self._extractor = None
        self._profile = None
        extractor.close()
        logger.info(f"🧹 Đã dispose extractor ({old_profile.value})")
