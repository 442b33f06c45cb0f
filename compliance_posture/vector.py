"""
Vector-similarity queries between policy and control embeddings.

The engine only depends on ``VectorIndex.nearest``. ``SqlVectorIndex`` serves
it from the embeddings stored on ``framework_controls`` using numpy cosine
similarity; a pgvector-backed index can replace it without touching callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
from sqlalchemy.orm import Session

from .db.models import ControlModel, FrameworkModel
from .errors import ValidationError


@dataclass(frozen=True)
class Neighbor:
    """A control close to the query embedding."""

    control_id: str
    control_ref: str
    similarity: float


class VectorIndex(ABC):
    """Nearest-neighbour search over a framework's control embeddings."""

    @abstractmethod
    def nearest(
        self, embedding: Sequence[float], framework_key: str, limit: int
    ) -> List[Neighbor]:
        """Return up to ``limit`` neighbours ordered by descending similarity."""


def validate_embedding(embedding: Sequence[float]) -> List[float]:
    """Check an embedding is a non-empty, finite, one-dimensional vector.

    Returns it as a list of floats suitable for a JSON column.
    """
    try:
        vector = np.asarray(list(embedding), dtype=float)
    except (TypeError, ValueError):
        raise ValidationError(
            "INVALID_EMBEDDING", "embedding must be a list of numbers", field="embedding"
        )
    if vector.ndim != 1 or vector.size == 0:
        raise ValidationError(
            "INVALID_EMBEDDING",
            "embedding must be a non-empty list of numbers",
            field="embedding",
        )
    if not np.all(np.isfinite(vector)):
        raise ValidationError(
            "INVALID_EMBEDDING",
            "embedding must contain only finite numbers",
            field="embedding",
        )
    return vector.tolist()


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    a_norm = np.linalg.norm(a)
    b_norm = np.linalg.norm(b)
    if a_norm == 0 or b_norm == 0:
        return 0.0
    # Rounding can push the ratio slightly past the unit interval
    return float(np.clip(np.dot(a, b) / (a_norm * b_norm), -1.0, 1.0))


class SqlVectorIndex(VectorIndex):
    """Brute-force cosine search over embeddings stored in the relational store."""

    def __init__(self, db: Session):
        self.db = db

    def nearest(
        self, embedding: Sequence[float], framework_key: str, limit: int
    ) -> List[Neighbor]:
        if limit < 1:
            return []

        query = np.asarray(embedding, dtype=float)
        if query.ndim != 1 or np.linalg.norm(query) == 0:
            return []

        controls = (
            self.db.query(ControlModel)
            .join(FrameworkModel, ControlModel.framework_id == FrameworkModel.id)
            .filter(FrameworkModel.key == framework_key)
            .filter(ControlModel.embedding.isnot(None))
            .all()
        )

        scored: List[Neighbor] = []
        for control in controls:
            vector = np.asarray(control.embedding, dtype=float)
            # Skip vectors from a different embedding model
            if vector.shape != query.shape or np.linalg.norm(vector) == 0:
                continue
            scored.append(
                Neighbor(
                    control_id=control.id,
                    control_ref=control.control_ref,
                    similarity=cosine_similarity(query, vector),
                )
            )

        scored.sort(key=lambda n: (-n.similarity, n.control_ref))
        return scored[:limit]
