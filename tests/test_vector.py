"""
Tests for cosine similarity search over stored control embeddings.
"""

import numpy as np
import pytest

from compliance_posture.errors import ValidationError
from compliance_posture.vector import SqlVectorIndex, cosine_similarity, validate_embedding


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity(np.array([1.0, 2.0]), np.array([1.0, 2.0])) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity(np.array([1.0, 0.0]), np.array([0.0, 3.0])) == 0.0

    def test_zero_vector(self):
        assert cosine_similarity(np.array([0.0, 0.0]), np.array([1.0, 0.0])) == 0.0


class TestValidateEmbedding:
    def test_returns_floats(self):
        assert validate_embedding([1, 2, 3]) == [1.0, 2.0, 3.0]

    @pytest.mark.parametrize("embedding", [[], [[1.0, 2.0]], [float("nan")]])
    def test_rejects(self, embedding):
        with pytest.raises(ValidationError):
            validate_embedding(embedding)


class TestSqlVectorIndex:
    def test_nearest_skips_mismatched_and_missing(self, db_session, framework_factory):
        framework_factory(
            key="ISO27001",
            refs=["A", "B", "C", "D", "E"],
            embeddings={
                "A": [1.0, 0.0],
                "B": [0.0, 1.0],
                "C": [1.0, 1.0],
                "D": [1.0, 0.0, 0.0],
                "E": [0.0, 0.0],
            },
        )
        framework_factory(key="OTHER", refs=["X"], embeddings={"X": [1.0, 0.0]})

        neighbors = SqlVectorIndex(db_session).nearest([1.0, 0.0], "ISO27001", limit=10)

        assert [n.control_ref for n in neighbors] == ["A", "C", "B"]
        assert neighbors[0].similarity == pytest.approx(1.0)

    def test_limit(self, db_session, framework_factory):
        framework_factory(
            key="ISO27001",
            refs=["A", "B", "C"],
            embeddings={"A": [1.0, 0.0], "B": [0.9, 0.1], "C": [0.5, 0.5]},
        )

        neighbors = SqlVectorIndex(db_session).nearest([1.0, 0.0], "ISO27001", limit=2)

        assert [n.control_ref for n in neighbors] == ["A", "B"]

    def test_zero_query_returns_nothing(self, db_session, framework_factory):
        framework_factory(key="ISO27001", refs=["A"], embeddings={"A": [1.0, 0.0]})

        assert SqlVectorIndex(db_session).nearest([0.0, 0.0], "ISO27001", limit=5) == []
