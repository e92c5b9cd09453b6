from .detect import UltraLightFaceDetector
from .landmarks import FaceMeshLandmarker

__all__ = ['UltraLightFaceDetector', 'FaceMeshLandmarker']
