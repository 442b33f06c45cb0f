"""
Policy-to-control matching.

Suggestions come from a ``VectorIndex``; nothing is persisted until the caller
accepts a suggestion, which stores a mapping row whose ``confidence`` is the
similarity at acceptance time. A policy without a precomputed embedding gets a
``no_embedding`` result and the index is not queried.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import (
    ControlModel,
    FrameworkModel,
    PolicyControlMappingModel,
    PolicyModel,
)
from ..errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from ..schemas.enums import SuggestionStatus
from ..schemas.matching import Suggestion, SuggestionResult
from ..schemas.primitives import utc_now
from ..vector import SqlVectorIndex, VectorIndex, validate_embedding

logger = structlog.get_logger()


class PolicyMatcher:
    """Suggests controls for a policy and records accepted mappings."""

    def __init__(
        self,
        db: Session,
        index: Optional[VectorIndex] = None,
        audit: Optional[AuditService] = None,
        candidate_multiplier: Optional[int] = None,
    ):
        self.db = db
        self.index = index or SqlVectorIndex(db)
        self.audit = audit or AuditService(db)
        if candidate_multiplier is None:
            from ..config import get_settings

            candidate_multiplier = get_settings().suggestion_candidate_multiplier
        self.candidate_multiplier = max(1, candidate_multiplier)

    def _policy(self, policy_id: str) -> PolicyModel:
        policy = self.db.query(PolicyModel).filter(PolicyModel.id == policy_id).first()
        if not policy:
            raise NotFoundError(
                "POLICY_NOT_FOUND", f"Policy '{policy_id}' not found", policy_id=policy_id
            )
        return policy

    def _require_framework(self, framework_key: str) -> None:
        exists = (
            self.db.query(FrameworkModel.id).filter(FrameworkModel.key == framework_key).first()
        )
        if exists is None:
            raise NotFoundError(
                "FRAMEWORK_NOT_FOUND",
                f"Framework '{framework_key}' not found",
                framework_key=framework_key,
            )

    def suggest(
        self,
        policy_id: str,
        framework_key: str,
        k: int = 5,
        min_similarity: float = 0.3,
    ) -> SuggestionResult:
        """Rank the framework's controls by similarity to a policy.

        Args:
            policy_id: Policy to match
            framework_key: Framework whose controls are candidates
            k: Maximum number of suggestions (>= 1)
            min_similarity: Similarity floor in [0, 1]

        Returns:
            SuggestionResult, at most ``k`` suggestions in descending similarity

        Raises:
            ValidationError: k or min_similarity out of range
            NotFoundError: unknown policy or framework
        """
        if isinstance(k, bool) or not isinstance(k, int) or k < 1:
            raise ValidationError("OUT_OF_RANGE", "k must be a positive integer", field="k")
        if not 0.0 <= min_similarity <= 1.0:
            raise ValidationError(
                "OUT_OF_RANGE",
                "min_similarity must be between 0 and 1",
                field="min_similarity",
            )

        policy = self._policy(policy_id)
        self._require_framework(framework_key)
        log = logger.bind(policy_id=policy_id, framework_key=framework_key)

        if not policy.embedding:
            log.info("policy_suggestions_skipped", reason="no_embedding")
            return SuggestionResult(
                policy_id=policy_id,
                framework_key=framework_key,
                status=SuggestionStatus.NO_EMBEDDING,
            )

        neighbors = self.index.nearest(
            policy.embedding, framework_key, k * self.candidate_multiplier
        )
        suggestions = sorted(
            (
                Suggestion(
                    control_id=n.control_id,
                    control_ref=n.control_ref,
                    similarity=n.similarity,
                )
                for n in neighbors
                if n.similarity >= min_similarity
            ),
            key=lambda s: -s.similarity,
        )[:k]

        log.info(
            "policy_suggestions_computed",
            candidates=len(neighbors),
            returned=len(suggestions),
        )
        return SuggestionResult(
            policy_id=policy_id,
            framework_key=framework_key,
            status=SuggestionStatus.OK,
            suggestions=suggestions,
        )

    def accept(
        self,
        policy_id: str,
        control_id: str,
        similarity: float,
        created_by: Optional[str] = None,
    ) -> PolicyControlMappingModel:
        """Persist a suggestion as a mapping.

        Raises:
            ValidationError: similarity outside [0, 1]
            NotFoundError: unknown policy or control
            ConflictError: the pair is already mapped
        """
        if not 0.0 <= similarity <= 1.0:
            raise ValidationError(
                "OUT_OF_RANGE", "similarity must be between 0 and 1", field="similarity"
            )

        policy = self._policy(policy_id)
        control = self.db.query(ControlModel).filter(ControlModel.id == control_id).first()
        if not control:
            raise NotFoundError(
                "CONTROL_NOT_FOUND", f"Control '{control_id}' not found", control_id=control_id
            )

        existing = (
            self.db.query(PolicyControlMappingModel)
            .filter(
                PolicyControlMappingModel.policy_id == policy_id,
                PolicyControlMappingModel.control_id == control_id,
            )
            .first()
        )
        if existing is not None:
            raise self._conflict(policy_id, control_id)

        mapping = PolicyControlMappingModel(
            policy_id=policy_id,
            control_id=control_id,
            confidence=float(similarity),
            created_by=created_by,
        )
        self.db.add(mapping)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            raise self._conflict(policy_id, control_id)

        self.audit.log_create(
            entity_kind="PolicyControlMapping",
            entity_id=mapping.id,
            after=mapping.to_dict(),
            actor_kind="human",
            actor_id=created_by or "policy-matcher",
            organization_id=policy.organization_id,
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise self._conflict(policy_id, control_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e), policy_id=policy_id)

        self.db.refresh(mapping)
        logger.info(
            "policy_mapping_accepted",
            policy_id=policy_id,
            control_id=control_id,
            control_ref=control.control_ref,
            confidence=mapping.confidence,
        )
        return mapping

    @staticmethod
    def _conflict(policy_id: str, control_id: str) -> ConflictError:
        return ConflictError(
            "MAPPING_EXISTS",
            f"Policy '{policy_id}' is already mapped to control '{control_id}'",
            policy_id=policy_id,
            control_id=control_id,
        )

    def mappings_for_policy(self, policy_id: str) -> List[PolicyControlMappingModel]:
        self._policy(policy_id)
        return (
            self.db.query(PolicyControlMappingModel)
            .filter(PolicyControlMappingModel.policy_id == policy_id)
            .order_by(PolicyControlMappingModel.created_at, PolicyControlMappingModel.id)
            .all()
        )

    def set_policy_embedding(
        self, policy_id: str, embedding: Sequence[float]
    ) -> PolicyModel:
        """Store a precomputed embedding for a policy."""
        vector = validate_embedding(embedding)
        policy = self._policy(policy_id)
        policy.embedding = vector
        policy.updated_at = utc_now()
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e), policy_id=policy_id)

        self.db.refresh(policy)
        logger.info("policy_embedding_set", policy_id=policy_id, dimensions=len(vector))
        return policy

    def register_policy(
        self,
        organization_id: str,
        title: str,
        embedding: Optional[Sequence[float]] = None,
        actor_id: str = "policy-matcher",
    ) -> PolicyModel:
        """Record an uploaded policy, optionally with its embedding."""
        if not organization_id or not organization_id.strip():
            raise ValidationError(
                "MISSING_FIELD", "organization_id is required", field="organization_id"
            )
        if not title or not title.strip():
            raise ValidationError("MISSING_FIELD", "title is required", field="title")

        policy = PolicyModel(
            organization_id=organization_id,
            title=title.strip(),
            embedding=validate_embedding(embedding) if embedding is not None else None,
        )
        self.db.add(policy)
        self.db.flush()
        self.audit.log_create(
            entity_kind="Policy",
            entity_id=policy.id,
            after=policy.to_dict(),
            actor_kind="human",
            actor_id=actor_id,
            organization_id=organization_id,
        )
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e))

        self.db.refresh(policy)
        logger.info("policy_registered", policy_id=policy.id, org_id=organization_id)
        return policy
