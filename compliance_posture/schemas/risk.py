"""
Risk register input records.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, constr

from .enums import RiskLevel, RiskStatus

# Lower bounds of impact x likelihood (1..25) for each level
HIGH_RISK_SCORE = 20
MEDIUM_RISK_SCORE = 10


def risk_level_for(score: int) -> RiskLevel:
    """Qualitative level for an impact x likelihood score."""
    if score >= HIGH_RISK_SCORE:
        return RiskLevel.HIGH
    if score >= MEDIUM_RISK_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class RiskCreate(BaseModel):
    """Schema for creating a catalog or register risk."""

    model_config = ConfigDict(extra="forbid")

    title: constr(strip_whitespace=True, min_length=1, max_length=256)
    category: constr(strip_whitespace=True, min_length=1, max_length=128)
    description: str = ""
    impact: int = Field(..., ge=1, le=5)
    likelihood: int = Field(..., ge=1, le=5)
    status: Optional[RiskStatus] = None
    owner: Optional[str] = None
    existing_controls: Optional[str] = None


class RiskAssessmentUpdate(BaseModel):
    """Re-assessment of an existing register risk."""

    model_config = ConfigDict(extra="forbid")

    impact: int = Field(..., ge=1, le=5)
    likelihood: int = Field(..., ge=1, le=5)


class RiskStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: RiskStatus


class RiskAdopt(BaseModel):
    """Adopt a catalog risk into an organization's register."""

    model_config = ConfigDict(extra="forbid")

    organization_id: str = Field(..., min_length=1, max_length=128)
    actor_id: Optional[str] = None
