from .recognition import FaceEmbedder, align_face
from .extractor import DescriptorExtractor, FaceExtractor

__all__ = ['FaceEmbedder', 'align_face', 'DescriptorExtractor', 'FaceExtractor']
