# rollcall/core/settings.py
"""
Configuration cho rollcall.

Giá trị mặc định nằm trong dataclass, có thể override bằng `config/config.json`.
Các component nhận tham số tường minh; singleton `settings` chỉ được đọc ở CLI.
"""
import os
import json
import logging
import platform
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# === PLATFORM DETECTION ===
IS_WINDOWS = platform.system() == "Windows"
IS_PI = platform.system() == "Linux" and os.path.exists("/proc/device-tree/model")
HAS_DISPLAY = IS_WINDOWS or os.environ.get("DISPLAY", "") != ""

# === PATHS ===
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
CONFIG_PATH = os.path.join(BASE_DIR, 'config', 'config.json')


def _load_json_config(path: str) -> dict:
    """Load config từ JSON file, trả về {} nếu không có hoặc lỗi."""
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Bỏ qua config lỗi {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


@dataclass
class Settings:
    """Toàn bộ settings runtime."""

    # === PLATFORM (read-only) ===
    IS_WINDOWS: bool = field(default_factory=lambda: IS_WINDOWS)
    IS_PI: bool = field(default_factory=lambda: IS_PI)
    HAS_DISPLAY: bool = field(default_factory=lambda: HAS_DISPLAY)
    BASE_DIR: str = field(default_factory=lambda: BASE_DIR)
    CONFIG_PATH: str = field(default_factory=lambda: CONFIG_PATH)

    # === RECOGNITION ===
    RECOGNITION_THRESHOLD: float = 0.65  # Cosine similarity, phải > ngưỡng
    COOLDOWN_SECONDS: float = 30         # Giữa 2 lần ghi sự kiện cùng một người
    HIGHLIGHT_SECONDS: float = 5         # Thời gian giữ highlight trên màn hình
    DETECTOR_PROFILE: str = "default"

    # === ENROLLMENT (quality gate) ===
    REQUIRED_GOOD_FRAMES: int = 30
    FACE_IDEAL_WIDTH_RATIO: float = 0.4
    FACE_WIDTH_TOLERANCE: float = 0.15
    MAX_YAW: float = 15
    MAX_PITCH: float = 10
    MIN_FACE_SCORE: float = 0.9
    SCHOOL_ID: str = "1"

    # === MODELS ===
    DETECTION_MODEL_INT8: str = "models/detection/version-RFB-320_int8_without_postprocessing.tflite"
    DETECTION_MODEL_FLOAT32: str = "models/detection/version-RFB-320_without_postprocessing.tflite"
    RECOGNITION_MODEL: str = "models/recognition/MobileFaceNet.tflite"
    LANDMARK_MODEL: str = "models/landmarks/face_landmarker.task"
    TFLITE_NUM_THREADS: int = 4

    # === STORAGE ===
    DB_PATH: str = "rollcall.db"

    # === WEB SERVER ===
    ENABLE_WEB_SERVER: bool = True
    WEB_PORT: int = 5000

    # === DISPLAY ===
    FORCE_GUI_MODE: bool = False
    HEADLESS_MODE: bool = False
    OVERLAY_ENABLED: bool = True

    # === CAMERA ===
    CAMERA_DEVICE: int = 0
    CAMERA_WIDTH: int = 640
    CAMERA_HEIGHT: int = 480

    def __post_init__(self):
        self._load_from_json()
        self._compute_defaults()

    def _load_from_json(self):
        """Load settings từ config.json nếu có."""
        config = _load_json_config(self.CONFIG_PATH)
        for key, value in config.items():
            if hasattr(self, key) and value is not None:
                setattr(self, key, value)
            else:
                logger.debug(f"Config key không dùng: {key}")

    def _compute_defaults(self):
        """Tính giá trị mặc định theo platform."""
        if self.IS_PI:
            self.CAMERA_WIDTH = min(self.CAMERA_WIDTH, 320)
            self.CAMERA_HEIGHT = min(self.CAMERA_HEIGHT, 240)
            self.TFLITE_NUM_THREADS = 2

        self.HEADLESS_MODE = not self.IS_WINDOWS and not self.FORCE_GUI_MODE and not self.HAS_DISPLAY
        self.OVERLAY_ENABLED = not self.HEADLESS_MODE

    def resolve_path(self, path: str) -> str:
        """Đường dẫn tương đối được tính từ BASE_DIR."""
        if os.path.isabs(path):
            return path
        return os.path.join(self.BASE_DIR, path)

    # === PROPERTY ALIASES ===
    @property
    def recognition_threshold(self) -> float:
        return self.RECOGNITION_THRESHOLD

    @property
    def cooldown_ms(self) -> int:
        return int(self.COOLDOWN_SECONDS * 1000)

    @property
    def highlight_seconds(self) -> float:
        return self.HIGHLIGHT_SECONDS

    @property
    def required_good_frames(self) -> int:
        return self.REQUIRED_GOOD_FRAMES

    @property
    def headless_mode(self) -> bool:
        return self.HEADLESS_MODE

    @property
    def camera_width(self) -> int:
        return self.CAMERA_WIDTH

    @property
    def camera_height(self) -> int:
        return self.CAMERA_HEIGHT

    @property
    def web_port(self) -> int:
        return self.WEB_PORT


# === SINGLETON (chỉ dùng ở CLI) ===
settings = Settings()
