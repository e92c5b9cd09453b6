# rollcall/processing/frame_skip.py
"""
Frame skip theo profile.

Mỗi profile có `skip_frames` cố định: chỉ frame thứ 0, N, 2N, ... được đưa
vào extractor, các frame còn lại chỉ grab để buffer camera không bị dồn.

Usage:
    skip = create_frame_skip(params.skip_frames)

    for frame_count in itertools.count():
        if skip.should_process(frame_count):
            start = time.time()
            process(frame)
            skip.update(time.time() - start)
"""
from collections import deque
from dataclasses import dataclass
from typing import Deque

CAMERA_FPS = 15  # Giả định để ước lượng effective fps


@dataclass
class FrameSkipStats:
    """Thống kê hiệu suất frame skip."""
    current_skip: int
    avg_process_ms: float
    skip_rate_percent: float
    effective_fps: float


class FixedFrameSkip:
    """
    Skip cố định + moving average thời gian xử lý (chỉ để thống kê).

    Args:
        skip: Xử lý 1 frame mỗi `skip` frame (>= 1)
        history_size: Số samples cho moving average
    """

    def __init__(self, skip: int = 1, history_size: int = 5):
        if skip < 1:
            raise ValueError(f"skip phải >= 1, nhận {skip}")
        self.current_skip = skip
        self._time_history: Deque[float] = deque(maxlen=history_size)
        self._total_frames = 0
        self._processed_frames = 0

    def should_process(self, frame_count: int) -> bool:
        self._total_frames += 1
        return frame_count % self.current_skip == 0

    def update(self, process_time: float) -> int:
        """Ghi nhận thời gian xử lý frame vừa rồi (giây)."""
        self._time_history.append(process_time)
        self._processed_frames += 1
        return self.current_skip

    def get_stats(self) -> FrameSkipStats:
        avg_time = (
            sum(self._time_history) / len(self._time_history)
            if self._time_history else 0
        )
        return FrameSkipStats(
            current_skip=self.current_skip,
            avg_process_ms=avg_time * 1000,
            skip_rate_percent=(
                (self._total_frames - self._processed_frames) / max(1, self._total_frames) * 100
            ),
            effective_fps=self._processed_frames / max(1, self._total_frames) * CAMERA_FPS
        )

    def reset_stats(self):
        self._total_frames = 0
        self._processed_frames = 0
        self._time_history.clear()


def create_frame_skip(skip: int = 1) -> FixedFrameSkip:
    """Factory cho frame skip handler của một profile."""
    return FixedFrameSkip(skip=max(1, int(skip)))
