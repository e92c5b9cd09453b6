# rollcall/processing/quality_gate.py
"""
Quality Gate cho enrollment.

Đánh giá từng frame theo chuỗi check có thứ tự (dừng ở check fail đầu tiên,
thứ tự quyết định feedback hiển thị), đếm số frame đạt liên tiếp và báo
`ready` khi đủ REQUIRED_GOOD_FRAMES.

Usage:
    gate = QualityGate(QualityThresholds())

    while True:
        result = gate.evaluate(extractor.detect(frame), frame_width=frame.shape[1])
        show(result.feedback)
        if result.ready:
            save(result.descriptor)
            break
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from ..core.types import FaceObservation

REQUIRED_GOOD_FRAMES = 30

# Face mesh index: yaw theo trục z (độ sâu), pitch theo trục y
YAW_LANDMARKS = (4, 238)
PITCH_LANDMARKS = (131, 360)


class Feedback(Enum):
    """Thông báo hướng dẫn người dùng (một thông báo mỗi frame)."""
    NO_FACE = "no face"
    SINGLE_SUBJECT = "require single subject"
    SEEKING_ANGLE = "seeking good angle"
    FACE_FORWARD = "face forward"
    HOLD_STRAIGHT = "hold head straight"
    MOVE_CLOSER = "move closer"
    MOVE_BACK = "move back"
    HOLD_STILL = "hold still"

    @property
    def is_ok(self) -> bool:
        return self is Feedback.HOLD_STILL


@dataclass(frozen=True)
class QualityThresholds:
    """Ngưỡng chất lượng - không đổi trong một lần chạy gate."""
    ideal_width_ratio: float = 0.4   # Bề rộng mặt / bề rộng frame
    width_tolerance: float = 0.15
    max_yaw: float = 15
    max_pitch: float = 10
    min_confidence: float = 0.9

    @property
    def min_width_ratio(self) -> float:
        return self.ideal_width_ratio - self.width_tolerance

    @property
    def max_width_ratio(self) -> float:
        return self.ideal_width_ratio + self.width_tolerance

    @classmethod
    def from_settings(cls, settings) -> "QualityThresholds":
        return cls(
            ideal_width_ratio=settings.FACE_IDEAL_WIDTH_RATIO,
            width_tolerance=settings.FACE_WIDTH_TOLERANCE,
            max_yaw=settings.MAX_YAW,
            max_pitch=settings.MAX_PITCH,
            min_confidence=settings.MIN_FACE_SCORE,
        )


@dataclass(frozen=True)
class GateResult:
    """Kết quả đánh giá một frame."""
    feedback: Feedback
    ready: bool = False
    descriptor: Optional[np.ndarray] = None
    count: int = 0


class StabilityState:
    """
    Bộ đếm frame đạt liên tiếp + observation đạt gần nhất.

    count > 0 thì last_good là observation của frame vừa đánh giá.
    """

    def __init__(self):
        self.count = 0
        self.last_good: Optional[FaceObservation] = None

    def record_pass(self, observation: FaceObservation):
        self.count += 1
        self.last_good = observation

    def reset(self):
        self.count = 0
        self.last_good = None


def estimate_yaw(landmarks: np.ndarray) -> Optional[float]:
    """Hiệu z giữa hai điểm mesh; None nếu mesh không đủ điểm."""
    a, b = YAW_LANDMARKS
    if landmarks is None or len(landmarks) <= max(a, b):
        return None
    return float(landmarks[a][2] - landmarks[b][2])


def estimate_pitch(landmarks: np.ndarray) -> Optional[float]:
    """Hiệu y giữa hai điểm mesh; None nếu mesh không đủ điểm."""
    a, b = PITCH_LANDMARKS
    if landmarks is None or len(landmarks) <= max(a, b):
        return None
    return float(landmarks[a][1] - landmarks[b][1])


def check_observation(
    observation: FaceObservation,
    frame_width: int,
    thresholds: QualityThresholds
) -> Feedback:
    """
    Chạy 5 check theo thứ tự, trả về feedback của check fail đầu tiên
    hoặc HOLD_STILL nếu tất cả đạt.

    Mesh thiếu điểm thì không ước lượng được tư thế -> coi như sai góc.
    """
    if observation.confidence < thresholds.min_confidence:
        return Feedback.SEEKING_ANGLE

    yaw = estimate_yaw(observation.landmarks)
    if yaw is None or abs(yaw) > thresholds.max_yaw:
        return Feedback.FACE_FORWARD

    pitch = estimate_pitch(observation.landmarks)
    if pitch is None or abs(pitch) > thresholds.max_pitch:
        return Feedback.HOLD_STRAIGHT

    width_ratio = observation.width / float(frame_width) if frame_width > 0 else 0.0
    if width_ratio < thresholds.min_width_ratio:
        return Feedback.MOVE_CLOSER
    if width_ratio > thresholds.max_width_ratio:
        return Feedback.MOVE_BACK

    return Feedback.HOLD_STILL


class QualityGate:
    """
    Gate một lần (one-shot): sau khi báo ready thì không đánh giá nữa cho tới
    khi `reset()` (vào lại trạng thái CAPTURE).

    Args:
        thresholds: QualityThresholds
        required_frames: Số frame đạt liên tiếp cần có
    """

    def __init__(
        self,
        thresholds: Optional[QualityThresholds] = None,
        required_frames: int = REQUIRED_GOOD_FRAMES
    ):
        if required_frames < 1:
            raise ValueError("required_frames phải >= 1")
        self.thresholds = thresholds or QualityThresholds()
        self.required_frames = required_frames
        self.state = StabilityState()
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def progress(self) -> float:
        """Tiến độ 0-1 cho overlay."""
        return min(self.state.count / self.required_frames, 1.0)

    def reset(self):
        """Chuẩn bị cho một lần capture mới."""
        self.state.reset()
        self._fired = False

    def evaluate(
        self,
        observations: Sequence[FaceObservation],
        frame_width: int
    ) -> GateResult:
        """
        Đánh giá observations của một frame.

        Raises:
            RuntimeError: Gate đã fire, caller phải dừng gọi
        """
        if self._fired:
            raise RuntimeError("QualityGate đã ready, cần reset() trước khi dùng lại")

        if len(observations) == 0:
            self.state.reset()
            return GateResult(Feedback.NO_FACE)

        if len(observations) > 1:
            self.state.reset()
            return GateResult(Feedback.SINGLE_SUBJECT)

        observation = observations[0]
        feedback = check_observation(observation, frame_width, self.thresholds)
        if not feedback.is_ok:
            self.state.reset()
            return GateResult(feedback)

        self.state.record_pass(observation)
        if self.state.count >= self.required_frames:
            self._fired = True
            return GateResult(
                feedback,
                ready=True,
                descriptor=self.state.last_good.descriptor,
                count=self.state.count
            )

        return GateResult(feedback, count=self.state.count)
