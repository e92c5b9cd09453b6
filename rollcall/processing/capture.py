# rollcall/processing/capture.py
"""
Capture Workflow - state machine đăng ký học sinh.

    FORM -> CAPTURE -> CONFIRM -> ENROLLED (-> FORM)

- FORM -> CAPTURE: cần tên và lớp (không rỗng); mở camera + lấy extractor
- CAPTURE -> CONFIRM: tự động khi QualityGate ready; chụp ảnh JPEG + descriptor
- CAPTURE -> FORM: cancel, lỗi camera / model
- CONFIRM -> CAPTURE: retry (bỏ ảnh + descriptor, chạy lại gate)
- CONFIRM -> FORM: discard (reset toàn bộ)
- CONFIRM -> ENROLLED: lưu thành công, sau đó reset về FORM

Camera được release đúng một lần mỗi lần vào CAPTURE, trên mọi đường thoát.
"""
import time
import logging
import threading
from enum import Enum
from typing import Callable, Optional

import cv2
import numpy as np

from ..core.errors import (
    AcquisitionError,
    ModelLoadError,
    PersistenceError,
    TransientDetectionError,
)
from ..core.profiles import DetectorProfile, get_profile_params, resolve_profile
from ..core.types import EnrolledIdentity
from .frame_skip import create_frame_skip
from .quality_gate import Feedback, GateResult, QualityGate

logger = logging.getLogger(__name__)


class WorkflowStep(Enum):
    FORM = "form"
    CAPTURE = "capture"
    CONFIRM = "confirm"
    ENROLLED = "enrolled"


class CaptureWorkflow:
    """
    Điều phối một lần đăng ký.

    Args:
        camera: FrameSource (start/read/grab/release)
        service: ExtractorService
        store: Persistence collaborator (enroll)
        gate: QualityGate (mặc định 30 frame)
        profile: Profile extractor cho enrollment
        school_id: Trường sở hữu học sinh mới
    """

    def __init__(
        self,
        camera,
        service,
        store,
        gate: Optional[QualityGate] = None,
        profile=DetectorProfile.ENROLLMENT,
        school_id: str = "1"
    ):
        self.camera = camera
        self.service = service
        self.store = store
        self.gate = gate or QualityGate()
        self.profile = resolve_profile(profile)
        self.school_id = school_id

        self.step = WorkflowStep.FORM
        self.name = ""
        self.group = ""
        self.error: Optional[str] = None
        self.feedback: Optional[Feedback] = None

        # Dữ liệu chụp được (chỉ có ở CONFIRM)
        self.photo: Optional[bytes] = None
        self.descriptor: Optional[np.ndarray] = None
        self.descriptor_model = ""

        self.frame: Optional[np.ndarray] = None
        self.last_enrolled: Optional[EnrolledIdentity] = None

        self._extractor = None
        self._camera_held = False
        self._frame_skip = None
        self._frame_count = 0
        self._looping = False
        self._stop = threading.Event()

    @property
    def progress(self) -> float:
        return self.gate.progress

    # === FORM ===

    def set_form(self, name: str, group: str):
        """Nhập tên + lớp (ở FORM, hoặc sửa tên ở CONFIRM)."""
        if self.step not in (WorkflowStep.FORM, WorkflowStep.CONFIRM):
            raise RuntimeError(f"Không sửa form ở bước {self.step.value}")
        self.name = name or ""
        self.group = group or ""

    def start_capture(self) -> bool:
        """
        FORM -> CAPTURE.

        Returns:
            False nếu form thiếu hoặc không lấy được camera / model
            (lỗi nằm trong `self.error`)
        """
        if self.step is not WorkflowStep.FORM:
            raise RuntimeError(f"start_capture chỉ gọi ở FORM, đang ở {self.step.value}")

        if not self.name.strip() or not self.group.strip():
            self.error = "Cần nhập tên và lớp"
            return False

        return self._enter_capture()

    def _enter_capture(self) -> bool:
        self.error = None
        self.feedback = None
        self._stop.clear()

        try:
            self._extractor = self.service.init(self.profile)
        except ModelLoadError as e:
            logger.error(f"❌ Không load được model: {e}")
            self._back_to_form(f"Không load được model: {e}")
            return False

        try:
            self.camera.start()
        except AcquisitionError as e:
            logger.error(f"❌ {e}")
            self._back_to_form(f"Không mở được camera: {e}")
            return False

        self._camera_held = True
        self.gate.reset()
        self._frame_skip = create_frame_skip(get_profile_params(self.profile).skip_frames)
        self._frame_count = 0
        self.step = WorkflowStep.CAPTURE
        logger.info(f"📸 Bắt đầu chụp cho {self.name.strip()} ({self.group.strip()})")
        return True

    # === CAPTURE ===

    def request_stop(self):
        """Báo dừng vòng capture (an toàn khi gọi từ thread khác)."""
        self._stop.set()

    def step_frame(self) -> Optional[GateResult]:
        """
        Một vòng lặp: đọc frame, extract (nếu đến lượt), đánh giá gate.

        Returns:
            GateResult của frame đã đánh giá, None nếu frame bị bỏ qua
        """
        if self.step is not WorkflowStep.CAPTURE or self._stop.is_set():
            return None

        frame_count = self._frame_count
        self._frame_count += 1
        if not self._frame_skip.should_process(frame_count):
            self.camera.grab()
            return None

        frame = self.camera.read()
        if frame is None:
            return None
        self.frame = frame

        start = time.time()
        try:
            observations = self._extractor.detect(frame)
        except TransientDetectionError as e:
            logger.debug(f"Bỏ qua frame: {e}")
            return None
        self._frame_skip.update(time.time() - start)

        # Bị cancel trong lúc extract
        if self._stop.is_set() or self.step is not WorkflowStep.CAPTURE:
            return None

        result = self.gate.evaluate(observations, frame_width=frame.shape[1])
        self.feedback = result.feedback
        if result.ready:
            self._on_ready(frame, result)
        return result

    def run_capture(self, on_frame: Optional[Callable] = None) -> WorkflowStep:
        """
        Lặp `step_frame` tới khi rời CAPTURE hoặc có tín hiệu dừng.

        Args:
            on_frame: function(workflow, result) gọi sau mỗi frame (hiển thị, phím)
        """
        self._looping = True
        try:
            while self.step is WorkflowStep.CAPTURE and not self._stop.is_set():
                result = self.step_frame()
                if on_frame is not None and self.frame is not None:
                    on_frame(self, result)
        finally:
            self._looping = False
            if self.step is WorkflowStep.CAPTURE:
                self.cancel()
        return self.step

    def _on_ready(self, frame: np.ndarray, result: GateResult):
        self._release_camera()

        if result.descriptor is None:
            logger.warning("⚠️ Frame đạt chuẩn nhưng không có descriptor")
            self._back_to_form("Không trích xuất được đặc trưng khuôn mặt, hãy thử lại")
            return

        ok, buf = cv2.imencode(".jpg", frame)
        if not ok:
            self._back_to_form("Không lưu được ảnh chụp, hãy thử lại")
            return

        self.photo = buf.tobytes()
        self.descriptor = np.asarray(result.descriptor, dtype=np.float32)
        self.descriptor_model = self._extractor.descriptor_model
        self.step = WorkflowStep.CONFIRM
        logger.info("✅ Đã chụp xong, chờ xác nhận")

    def cancel(self):
        """
        CAPTURE -> FORM, giữ nguyên tên và lớp.

        Trong lúc `run_capture` đang chạy chỉ báo dừng; camera được release
        khi vòng lặp thoát. Từ thread khác hãy dùng `request_stop()`.
        """
        self._stop.set()
        if self._looping:
            return
        if self.step is WorkflowStep.CAPTURE:
            self._release_camera()
            self.step = WorkflowStep.FORM
            self.feedback = None
            logger.info("Đã hủy chụp")

    # === CONFIRM ===

    def retry(self) -> bool:
        """CONFIRM -> CAPTURE: bỏ ảnh + descriptor, chạy lại gate."""
        if self.step is not WorkflowStep.CONFIRM:
            raise RuntimeError(f"retry chỉ gọi ở CONFIRM, đang ở {self.step.value}")
        self._clear_capture()
        self.step = WorkflowStep.FORM
        return self._enter_capture()

    def discard(self):
        """CONFIRM -> FORM, reset toàn bộ."""
        if self.step is not WorkflowStep.CONFIRM:
            raise RuntimeError(f"discard chỉ gọi ở CONFIRM, đang ở {self.step.value}")
        self._reset()

    def confirm(self) -> Optional[EnrolledIdentity]:
        """
        CONFIRM -> ENROLLED -> FORM.

        Returns:
            EnrolledIdentity nếu lưu thành công; None nếu lỗi (vẫn ở CONFIRM,
            dữ liệu giữ nguyên để thử lại)
        """
        if self.step is not WorkflowStep.CONFIRM:
            raise RuntimeError(f"confirm chỉ gọi ở CONFIRM, đang ở {self.step.value}")

        if not self.name.strip():
            self.error = "Cần nhập tên"
            return None

        try:
            identity = self.store.enroll(
                name=self.name.strip(),
                group=self.group.strip(),
                school_id=self.school_id,
                descriptor=self.descriptor,
                photo=self.photo,
                descriptor_model=self.descriptor_model,
            )
        except PersistenceError as e:
            logger.error(f"❌ Lưu thất bại: {e}")
            self.error = f"Lưu thất bại: {e}"
            return None

        self.step = WorkflowStep.ENROLLED
        self.last_enrolled = identity
        logger.info(f"✅ Đã đăng ký: {identity.name} (id={identity.id})")
        self._reset()
        return identity

    # === TEARDOWN ===

    def close(self):
        """Unmount: dừng mọi thứ, trả camera."""
        self._stop.set()
        self._release_camera()
        self._reset()

    def _release_camera(self):
        if self._camera_held:
            self._camera_held = False
            self.camera.release()

    def _back_to_form(self, message: str):
        self._release_camera()
        self._clear_capture()
        self.error = message
        self.step = WorkflowStep.FORM

    def _clear_capture(self):
        self.photo = None
        self.descriptor = None
        self.descriptor_model = ""
        self.frame = None
        self.feedback = None

    def _reset(self):
        self._clear_capture()
        self.name = ""
        self.group = ""
        self.error = None
        self.step = WorkflowStep.FORM
