# rollcall/processing/matching.py
"""
Match Engine: so descriptor truy vấn với gallery bằng cosine similarity.

Linear scan vector hóa bằng numpy, chấp nhận khi score > threshold (strict).
Tính bằng float64: float32 làm tròn cosine 0.65 thành 0.6500000358 (vượt ngưỡng).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..core.errors import DescriptorMismatchError
from ..core.types import EnrolledIdentity

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.65
# Score chỉ hơn ngưỡng do sai số làm tròn vẫn tính là bằng ngưỡng
SCORE_EPSILON = 1e-9


@dataclass(frozen=True)
class MatchResult:
    """Kết quả match cho một descriptor."""
    identity: Optional[EnrolledIdentity] = None
    score: float = 0.0
    accepted: bool = False

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.accepted and self.identity is not None else None


NO_MATCH = MatchResult()


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity của hai vector; 0 nếu một trong hai có norm 0."""
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        raise DescriptorMismatchError(f"Descriptor dimension khác nhau: {a.shape[0]} vs {b.shape[0]}")
    norm = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def _similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity của query với từng hàng của matrix."""
    row_norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query))
    denom = row_norms * query_norm
    dots = matrix @ query
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)


def best_match(
    query: Optional[np.ndarray],
    gallery: Sequence[EnrolledIdentity],
    threshold: float = DEFAULT_THRESHOLD
) -> MatchResult:
    """
    Tìm identity gần nhất trong gallery.

    Raises:
        DescriptorMismatchError: Descriptor trong gallery khác dimension với query
    """
    if query is None or len(gallery) == 0:
        return NO_MATCH

    query = np.asarray(query, dtype=np.float64).ravel()
    for identity in gallery:
        if np.asarray(identity.descriptor).size != query.size:
            raise DescriptorMismatchError(
                f"Descriptor của '{identity.id}' có dimension "
                f"{np.asarray(identity.descriptor).size}, query có {query.size}"
            )

    matrix = np.stack([np.asarray(i.descriptor, dtype=np.float64).ravel() for i in gallery])
    scores = _similarities(query, matrix)
    best = int(np.argmax(scores))
    score = float(scores[best])
    return MatchResult(identity=gallery[best], score=score, accepted=score > threshold + SCORE_EPSILON)


class MatchEngine:
    """
    Giữ threshold cho recognition loop.

    Args:
        threshold: Ngưỡng cosine similarity (mặc định 0.65)
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def match(self, query, gallery) -> MatchResult:
        result = best_match(query, gallery, self.threshold)
        if result.identity is not None:
            logger.debug(
                f"Best match: {result.identity.name} ({result.score:.3f}) "
                f"{'✓' if result.accepted else '✗'}"
            )
        return result
