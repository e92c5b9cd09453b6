"""
Processing modules - Enrollment & Recognition logic.

- quality_gate: Kiểm tra chất lượng frame khi đăng ký
- capture: State machine đăng ký
- matching: Cosine similarity + best match
- debounce: Highlight / cooldown ghi sự kiện
- live: Vòng nhận diện live
- frame_skip: Frame skip theo profile
- display: UI/Overlay handler
"""

from .quality_gate import QualityGate, QualityThresholds, GateResult, Feedback, StabilityState
from .capture import CaptureWorkflow, WorkflowStep
from .matching import MatchEngine, MatchResult, best_match, cosine_similarity
from .debounce import RecognitionDebouncer, Action, ActionKind, HighlightTimer
from .live import LiveRecognizer
from .frame_skip import FixedFrameSkip, FrameSkipStats, create_frame_skip
from .display import DisplayHandler, FaceStatus

__all__ = [
    'QualityGate',
    'QualityThresholds',
    'GateResult',
    'Feedback',
    'StabilityState',
    'CaptureWorkflow',
    'WorkflowStep',
    'MatchEngine',
    'MatchResult',
    'best_match',
    'cosine_similarity',
    'RecognitionDebouncer',
    'Action',
    'ActionKind',
    'HighlightTimer',
    'LiveRecognizer',
    'FixedFrameSkip',
    'FrameSkipStats',
    'create_frame_skip',
    'DisplayHandler',
    'FaceStatus',
]
