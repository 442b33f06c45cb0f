"""
Tests for policy-to-control suggestions and accepted mappings.
"""

import math

import pytest

from compliance_posture.db.audit_service import AuditService
from compliance_posture.db.models import PolicyControlMappingModel
from compliance_posture.engine.policy_matcher import PolicyMatcher
from compliance_posture.errors import ConflictError, NotFoundError, ValidationError
from compliance_posture.schemas import SuggestionStatus
from compliance_posture.vector import Neighbor, SqlVectorIndex, VectorIndex

EMBEDDINGS = {
    "A.5.1": [1.0, 0.0, 0.0],
    "A.5.2": [0.8, 0.6, 0.0],
    "A.5.3": [0.0, 1.0, 0.0],
    "A.5.4": [1.0, 1.0, 0.0],
    "A.5.5": [1.0, 0.0],
}


class SpyIndex(VectorIndex):
    """Records every query and serves canned neighbours."""

    def __init__(self, neighbors=None):
        self.calls = []
        self.neighbors = neighbors or []

    def nearest(self, embedding, framework_key, limit):
        self.calls.append((list(embedding), framework_key, limit))
        return self.neighbors[:limit]


@pytest.fixture
def framework(framework_factory):
    return framework_factory(
        key="ISO27001", refs=["A.5.1", "A.5.2", "A.5.3", "A.5.4", "A.5.5"], embeddings=EMBEDDINGS
    )


@pytest.fixture
def matcher(db_session):
    return PolicyMatcher(db_session, candidate_multiplier=3)


def _control_id(framework, ref):
    return next(c.id for c in framework.controls if c.control_ref == ref)


class TestSuggest:
    def test_policy_without_embedding_skips_index(self, db_session, framework):
        """No embedding: no_embedding result, no similarity query, no rows."""
        spy = SpyIndex()
        matcher = PolicyMatcher(db_session, index=spy, candidate_multiplier=3)
        policy = matcher.register_policy("org-1", "Acceptable Use Policy")

        result = matcher.suggest(policy.id, "ISO27001")

        assert result.status == SuggestionStatus.NO_EMBEDDING
        assert result.suggestions == []
        assert spy.calls == []
        assert db_session.query(PolicyControlMappingModel).count() == 0

    def test_ranked_by_similarity(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control", embedding=[1.0, 0.0, 0.0])

        result = matcher.suggest(policy.id, "ISO27001", k=5, min_similarity=0.3)

        assert result.status == SuggestionStatus.OK
        assert [s.control_ref for s in result.suggestions] == ["A.5.1", "A.5.2", "A.5.4"]
        assert result.suggestions[0].similarity == pytest.approx(1.0)
        assert result.suggestions[1].similarity == pytest.approx(0.8)
        assert result.suggestions[2].similarity == pytest.approx(1 / math.sqrt(2))

    def test_never_more_than_k(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control", embedding=[1.0, 0.0, 0.0])

        result = matcher.suggest(policy.id, "ISO27001", k=2, min_similarity=0.0)

        assert [s.control_ref for s in result.suggestions] == ["A.5.1", "A.5.2"]

    def test_never_below_min_similarity(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control", embedding=[1.0, 0.0, 0.0])

        result = matcher.suggest(policy.id, "ISO27001", k=5, min_similarity=0.75)

        assert all(s.similarity >= 0.75 for s in result.suggestions)
        assert len(result.suggestions) == 2

    def test_requests_extra_candidates(self, db_session, framework):
        neighbors = [
            Neighbor(control_id=f"c{i}", control_ref=f"R{i}", similarity=s)
            for i, s in enumerate([0.95, 0.9, 0.2, 0.85, 0.1, 0.8])
        ]
        spy = SpyIndex(neighbors)
        matcher = PolicyMatcher(db_session, index=spy, candidate_multiplier=3)
        policy = matcher.register_policy("org-1", "Policy", embedding=[0.1, 0.2, 0.3])

        result = matcher.suggest(policy.id, "ISO27001", k=2, min_similarity=0.3)

        assert spy.calls == [([0.1, 0.2, 0.3], "ISO27001", 6)]
        assert [s.control_ref for s in result.suggestions] == ["R0", "R1"]

    def test_suggest_persists_nothing(self, db_session, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control", embedding=[1.0, 0.0, 0.0])

        matcher.suggest(policy.id, "ISO27001")

        assert db_session.query(PolicyControlMappingModel).count() == 0

    @pytest.mark.parametrize("k,min_similarity", [(0, 0.3), (-1, 0.3), (5, -0.1), (5, 1.5)])
    def test_bounds(self, matcher, framework, k, min_similarity):
        policy = matcher.register_policy("org-1", "Policy", embedding=[1.0, 0.0, 0.0])

        with pytest.raises(ValidationError):
            matcher.suggest(policy.id, "ISO27001", k=k, min_similarity=min_similarity)

    def test_unknown_policy_or_framework(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Policy", embedding=[1.0, 0.0, 0.0])

        with pytest.raises(NotFoundError):
            matcher.suggest("missing", "ISO27001")
        with pytest.raises(NotFoundError):
            matcher.suggest(policy.id, "SOC9")


class TestAccept:
    def test_accept_twice_conflicts(self, db_session, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control")
        control_id = _control_id(framework, "A.5.1")

        mapping = matcher.accept(policy.id, control_id, 0.82, created_by="alice")
        assert mapping.confidence == pytest.approx(0.82)

        with pytest.raises(ConflictError) as exc_info:
            matcher.accept(policy.id, control_id, 0.82)

        assert exc_info.value.code == "MAPPING_EXISTS"
        assert db_session.query(PolicyControlMappingModel).count() == 1

    def test_accept_is_audited(self, db_session, matcher, framework):
        policy = matcher.register_policy("org-1", "Access Control")

        mapping = matcher.accept(policy.id, _control_id(framework, "A.5.2"), 0.6, created_by="alice")

        [entry] = AuditService(db_session).get_entity_history("PolicyControlMapping", mapping.id)
        assert entry.action == "created"
        assert entry.organization_id == "org-1"
        assert entry.actor_id == "alice"

    @pytest.mark.parametrize("similarity", [-0.01, 1.01])
    def test_similarity_bounds(self, matcher, framework, similarity):
        policy = matcher.register_policy("org-1", "Policy")

        with pytest.raises(ValidationError):
            matcher.accept(policy.id, _control_id(framework, "A.5.1"), similarity)

    def test_unknown_control(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Policy")

        with pytest.raises(NotFoundError):
            matcher.accept(policy.id, "missing", 0.5)

    def test_mappings_for_policy(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Policy")
        matcher.accept(policy.id, _control_id(framework, "A.5.1"), 0.9)
        matcher.accept(policy.id, _control_id(framework, "A.5.3"), 0.5)

        mappings = matcher.mappings_for_policy(policy.id)

        assert len(mappings) == 2
        assert {m.confidence for m in mappings} == {0.9, 0.5}


class TestEmbeddings:
    def test_set_policy_embedding_enables_suggestions(self, matcher, framework):
        policy = matcher.register_policy("org-1", "Policy")

        matcher.set_policy_embedding(policy.id, [0.0, 1.0, 0.0])
        result = matcher.suggest(policy.id, "ISO27001", k=1, min_similarity=0.5)

        assert result.status == SuggestionStatus.OK
        assert [s.control_ref for s in result.suggestions] == ["A.5.3"]

    @pytest.mark.parametrize("embedding", [[], [float("nan"), 1.0], [float("inf")], ["x"]])
    def test_invalid_embedding_rejected(self, matcher, embedding):
        policy = matcher.register_policy("org-1", "Policy")

        with pytest.raises(ValidationError) as exc_info:
            matcher.set_policy_embedding(policy.id, embedding)
        assert exc_info.value.code == "INVALID_EMBEDDING"

    def test_default_index_is_sql(self, matcher):
        assert isinstance(matcher.index, SqlVectorIndex)
