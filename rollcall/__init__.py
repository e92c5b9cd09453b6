"""
Rollcall - Điểm danh học sinh bằng nhận diện khuôn mặt

Structure:
    rollcall/
    ├── core/                     # Core infrastructure
    │   ├── settings.py           # Configuration
    │   ├── errors.py             # Exceptions
    │   ├── types.py              # FaceObservation, EnrolledIdentity, RecognitionEvent
    │   ├── profiles.py           # Detector profiles
    │   ├── camera.py             # Camera management
    │   ├── tflite_helper.py      # TFLite interpreter helper
    │   └── model_factory.py      # Extractor factory + ExtractorService
    ├── detect/                   # Face detection
    │   ├── detect.py             # Ultra-Light detector (TFLite)
    │   └── landmarks.py          # Face mesh (MediaPipe)
    ├── recognition/              # Face descriptor
    │   ├── recognition.py        # MobileFaceNet embedder
    │   └── extractor.py          # Detector + mesh + embedder
    ├── processing/               # Enrollment & recognition logic
    │   ├── quality_gate.py       # Quality gate
    │   ├── capture.py            # Enrollment state machine
    │   ├── matching.py           # Match engine
    │   ├── debounce.py           # Highlight / cooldown
    │   ├── live.py               # Live recognition loop
    │   ├── frame_skip.py         # Frame skip handler
    │   └── display.py            # UI/Overlay handler
    ├── data/                     # Data layer
    │   └── database.py           # SQLite database
    ├── web/                      # Web dashboard
    │   ├── server.py             # Flask web server
    │   └── feed.py               # Live status feed
    └── main.py                   # CLI

Usage:
    from rollcall import ExtractorService, create_extractor, settings

    service = ExtractorService(lambda p: create_extractor(p, settings))
    extractor = service.init("default")
"""

from .core.settings import settings
from .core.model_factory import ExtractorService, create_extractor
from .core.profiles import DetectorProfile

__all__ = [
    'settings',
    'ExtractorService',
    'create_extractor',
    'DetectorProfile',
]
