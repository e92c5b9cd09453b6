# rollcall/core/camera.py
"""
Camera Manager - FrameSource của hệ thống.

Mở camera với retry, warm-up, và đảm bảo release trên mọi đường thoát.

Usage:
    from rollcall.core.camera import CameraManager, CameraConfig

    camera = CameraManager(device_id=0, config=CameraConfig(width=640, height=480))
    camera.start()
    try:
        frame = camera.read()
    finally:
        camera.release()
"""
import time
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .errors import AcquisitionError

logger = logging.getLogger(__name__)


@dataclass
class CameraConfig:
    """Cấu hình camera."""
    width: int = 640
    height: int = 480
    fps: int = 30
    buffer_size: int = 1
    warmup_frames: int = 5
    max_retries: int = 3
    retry_delay: float = 2.0
    use_mjpg: bool = False  # MJPG codec (tốt cho Pi)


class CameraManager:
    """
    Quản lý một camera device.

    `open()` / `release()` là API cấp thấp; `start()` raise AcquisitionError;
    `grab()` bỏ qua frame mà không decode (cho frame skip).
    """

    def __init__(
        self,
        device_id: int = 0,
        config: Optional[CameraConfig] = None,
        is_pi: bool = False
    ):
        self.device_id = device_id
        self.config = config or CameraConfig()
        self.is_pi = is_pi

        self._cap: Optional[cv2.VideoCapture] = None
        self._is_open = False

        if is_pi:
            self.config.use_mjpg = True
            self.config.fps = 15

    def open(self) -> bool:
        """
        Mở camera với retry logic.

        Returns:
            True nếu thành công
        """
        for attempt in range(self.config.max_retries):
            try:
                self._cap = cv2.VideoCapture(self.device_id)

                if self._cap.isOpened():
                    self._configure_camera()
                    self._warmup()
                    self._is_open = True

                    actual_w, actual_h = self.get_resolution()
                    logger.info(f"📹 Camera {self.device_id} opened: {actual_w}x{actual_h}")
                    return True

                self._cap.release()
                self._cap = None

            except cv2.error as e:
                logger.warning(f"Camera error: {e}")
                self._cap = None

            if attempt < self.config.max_retries - 1:
                logger.warning(
                    f"⚠️ Camera chưa sẵn sàng, thử lại "
                    f"({attempt + 1}/{self.config.max_retries})..."
                )
                time.sleep(self.config.retry_delay)

        logger.error(f"❌ Không thể mở camera {self.device_id}")
        return False

    def start(self) -> "CameraManager":
        """
        Mở camera, raise nếu không được.

        Raises:
            AcquisitionError: Camera không có hoặc bị từ chối quyền
        """
        if not self.open():
            raise AcquisitionError(f"Không thể mở camera {self.device_id}")
        return self

    def _configure_camera(self):
        if self._cap is None:
            return

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)

        if self.is_pi:
            self._cap.set(cv2.CAP_PROP_FPS, self.config.fps)
            if self.config.use_mjpg:
                self._cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*'MJPG'))

    def _warmup(self):
        """Đọc vài frame đầu để auto-exposure ổn định."""
        if self._cap is None:
            return
        for _ in range(self.config.warmup_frames):
            self._cap.grab()

    def read(self) -> Optional[np.ndarray]:
        """
        Đọc một frame BGR.

        Returns:
            Frame hoặc None nếu camera đóng / lỗi đọc
        """
        if not self._is_open or self._cap is None:
            return None

        ret, frame = self._cap.read()
        if not ret:
            logger.warning("Không đọc được frame!")
            return None
        return frame

    def grab(self) -> bool:
        """Advance buffer mà không decode - dùng cho frame bị skip."""
        if not self._is_open or self._cap is None:
            return False
        return self._cap.grab()

    def release(self):
        """Giải phóng camera. Gọi nhiều lần không sao."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"📹 Camera {self.device_id} released")
        self._is_open = False

    def get_resolution(self) -> Tuple[int, int]:
        if self._cap is None:
            return (0, 0)
        return (
            int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        )


def create_camera(settings) -> CameraManager:
    """Tạo CameraManager từ Settings."""
    config = CameraConfig(
        width=settings.CAMERA_WIDTH,
        height=settings.CAMERA_HEIGHT,
        fps=15 if settings.IS_PI else 30,
        use_mjpg=settings.IS_PI
    )
    return CameraManager(device_id=settings.CAMERA_DEVICE, config=config, is_pi=settings.IS_PI)
