"""
Core modules - Infrastructure & Configuration.

- settings: Unified configuration
- errors: Exception hierarchy
- types: Shared data types
- profiles: Detector profile table
- camera: Camera management
- tflite_helper: TFLite interpreter helper
- model_factory: Extractor factory + lifecycle service
"""

from .settings import settings, Settings
from .errors import (
    RollcallError,
    AcquisitionError,
    ModelLoadError,
    TransientDetectionError,
    PersistenceError,
    DescriptorMismatchError,
)
from .types import FaceObservation, EnrolledIdentity, RecognitionEvent
from .profiles import DetectorProfile, ModelVariant, ProfileParams, PROFILES, get_profile_params, resolve_profile
from .camera import CameraManager, CameraConfig, create_camera
from .tflite_helper import get_interpreter
from .model_factory import ExtractorService, create_extractor

__all__ = [
    'settings',
    'Settings',
    'RollcallError',
    'AcquisitionError',
    'ModelLoadError',
    'TransientDetectionError',
    'PersistenceError',
    'DescriptorMismatchError',
    'FaceObservation',
    'EnrolledIdentity',
    'RecognitionEvent',
    'DetectorProfile',
    'ModelVariant',
    'ProfileParams',
    'PROFILES',
    'get_profile_params',
    'resolve_profile',
    'CameraManager',
    'CameraConfig',
    'create_camera',
    'get_interpreter',
    'ExtractorService',
    'create_extractor',
]
