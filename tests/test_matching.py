"""Tests for descriptor matching."""

import numpy as np
import pytest

from rollcall.core.errors import DescriptorMismatchError
from rollcall.core.types import EnrolledIdentity
from rollcall.processing.matching import MatchEngine, best_match, cosine_similarity

from conftest import make_identity


class TestBestMatch:
    def test_empty_gallery(self, make_embedding):
        result = best_match(make_embedding(1), [])
        assert result.identity is None
        assert result.score == 0.0
        assert result.accepted is False

    def test_missing_query(self):
        result = best_match(None, [make_identity()])
        assert result.identity is None
        assert result.score == 0.0
        assert result.accepted is False

    def test_identical_descriptor(self):
        gallery = [make_identity("a", seed=1), make_identity("b", seed=2)]
        result = best_match(gallery[1].descriptor.copy(), gallery)

        assert result.identity.id == "b"
        assert result.score == pytest.approx(1.0, abs=1e-5)
        assert result.accepted is True
        assert result.identity_id == "b"

    def test_picks_highest_similarity(self, make_embedding):
        query = make_embedding(5)
        noisy = query + 0.05 * make_embedding(6)
        near = EnrolledIdentity(
            id="near", name="Near", group="g", school_id="1",
            descriptor=noisy / np.linalg.norm(noisy),
        )
        gallery = [make_identity("far", seed=7), near]
        result = best_match(query, gallery)
        assert result.identity.id == "near"
        assert result.accepted is True

    def test_score_at_default_threshold_is_rejected(self):
        boundary = EnrolledIdentity(
            id="edge", name="Edge", group="g", school_id="1",
            descriptor=np.array([0.65, np.sqrt(1 - 0.65 ** 2)]),
        )
        for scale in (0.5, 1.0, 2.0, 3.0, 7.0):
            result = best_match(np.array([scale, 0.0]), [boundary])
            assert result.score == pytest.approx(0.65)
            assert result.accepted is False, scale
            assert result.identity_id is None

    def test_score_at_threshold_rejected_in_3d(self):
        boundary = EnrolledIdentity(
            id="edge", name="Edge", group="g", school_id="1",
            descriptor=np.array([0.65, 0.0, np.sqrt(1 - 0.65 ** 2)]),
        )
        assert best_match(np.array([1.0, 0.0, 0.0]), [boundary]).accepted is False

    def test_score_just_above_threshold_is_accepted(self):
        above = EnrolledIdentity(
            id="above", name="Above", group="g", school_id="1",
            descriptor=np.array([0.651, np.sqrt(1 - 0.651 ** 2)]),
        )
        assert best_match(np.array([1.0, 0.0]), [above]).accepted is True

    def test_unrelated_descriptor_rejected(self, make_embedding):
        result = best_match(make_embedding(100), [make_identity("a", seed=200)])
        assert result.accepted is False

    def test_dimension_mismatch_raises(self, make_embedding):
        with pytest.raises(DescriptorMismatchError):
            best_match(make_embedding(1, dim=64), [make_identity("a")])

    def test_zero_vector_scores_zero(self):
        gallery = [make_identity("a")]
        result = best_match(np.zeros(128, dtype=np.float32), gallery)
        assert result.score == 0.0
        assert result.accepted is False


class TestCosineSimilarity:
    def test_orthogonal(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_opposite(self):
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_not_normalized_inputs(self):
        assert cosine_similarity([2, 0], [5, 0]) == pytest.approx(1.0)

    def test_zero_norm(self):
        assert cosine_similarity([0, 0], [1, 0]) == 0.0

    def test_shape_mismatch(self):
        with pytest.raises(DescriptorMismatchError):
            cosine_similarity([1, 0, 0], [1, 0])


class TestMatchEngine:
    def test_uses_configured_threshold(self):
        gallery = [make_identity("a", seed=3)]
        strict = MatchEngine(threshold=1.5)
        assert strict.match(gallery[0].descriptor, gallery).accepted is False
        assert MatchEngine().match(gallery[0].descriptor, gallery).accepted is True

    def test_default_threshold(self):
        assert MatchEngine().threshold == 0.65
