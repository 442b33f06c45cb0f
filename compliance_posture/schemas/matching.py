"""
Policy-to-control matching records.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import SuggestionStatus


class Suggestion(BaseModel):
    """A candidate control for a policy."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    control_id: str
    control_ref: str
    similarity: float = Field(..., ge=-1.0, le=1.0)


class SuggestionResult(BaseModel):
    """Result of a suggestion request.

    ``status`` is ``no_embedding`` when the policy has no precomputed vector;
    in that case ``suggestions`` is empty and no similarity query was run.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    policy_id: str
    framework_key: str
    status: SuggestionStatus
    suggestions: List[Suggestion] = Field(default_factory=list)


class MappingAccept(BaseModel):
    """Request to persist a suggestion as a policy/control mapping."""

    model_config = ConfigDict(extra="forbid")

    control_id: str = Field(..., min_length=1, max_length=128)
    similarity: float = Field(..., ge=0.0, le=1.0)
    created_by: Optional[str] = None


class EmbeddingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    embedding: List[float] = Field(..., min_length=1)


class PolicyCreate(BaseModel):
    """An uploaded policy; text extraction and embedding happen upstream."""

    model_config = ConfigDict(extra="forbid")

    organization_id: str = Field(..., min_length=1, max_length=128)
    title: str = Field(..., min_length=1, max_length=512)
    embedding: Optional[List[float]] = None
