"""
Posture aggregation records.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import ImplementationStatus


class StatusChange(BaseModel):
    """Request to set a control's implementation status for an organization."""

    model_config = ConfigDict(extra="forbid")

    organization_id: str = Field(..., min_length=1, max_length=128)
    status: ImplementationStatus
    notes: Optional[str] = None
    updated_by: Optional[str] = None


class FrameworkPosture(BaseModel):
    """Completion statistics for one framework within one organization.

    Percentages are rounded independently and may not sum to exactly 100.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    framework_key: str
    name: str
    total: int = Field(..., ge=0)
    implemented: int = Field(..., ge=0, le=100)
    in_progress: int = Field(..., ge=0, le=100)
    not_started: int = Field(..., ge=0, le=100)
    exempt: int = Field(..., ge=0, le=100)
    counts: Dict[ImplementationStatus, int] = Field(default_factory=dict)
    evidence: int = Field(default=0, ge=0)
    mapped_controls: int = Field(default=0, ge=0)


class PostureSummary(BaseModel):
    """Organization-wide headline across the selected frameworks."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    organization_id: str
    compliance_percentage: int = Field(..., ge=0, le=100)
    total_controls: int = Field(..., ge=0)
    implemented_controls: int = Field(..., ge=0)
    frameworks: Dict[str, FrameworkPosture] = Field(default_factory=dict)
