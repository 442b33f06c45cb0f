"""
Vendor due-diligence questionnaire and its scored result.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import AgreementWillingness, Disclosure, Presence, RiskTier, YesNo
from .primitives import normalize_choice


class VendorQuestionnaire(BaseModel):
    """Flat set of categorical answers. Every field is optional.

    Accepts snake_case names or the camelCase keys the onboarding forms send
    (``hasSecurityPolicy``, ``hasBCP``, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    # Financial health
    profitable_last_two_years: Optional[YesNo] = None
    provide_financial_statements: Optional[Disclosure] = None
    restructuring_notes: Optional[str] = None

    # Security posture
    has_security_policy: Optional[YesNo] = None
    security_audits: Optional[Presence] = None
    has_bcp: Optional[YesNo] = Field(default=None, alias="hasBCP")

    # Operational maturity
    has_quality_management: Optional[YesNo] = None
    kpis: Optional[Presence] = None

    # Legal / compliance willingness
    has_code_of_conduct: Optional[YesNo] = None
    willing_to_sign_agreement: Optional[AgreementWillingness] = None

    @field_validator(
        "profitable_last_two_years",
        "provide_financial_statements",
        "has_security_policy",
        "security_audits",
        "has_bcp",
        "has_quality_management",
        "kpis",
        "has_code_of_conduct",
        "willing_to_sign_agreement",
        mode="before",
    )
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_choice(value)

    @field_validator("restructuring_notes", mode="before")
    @classmethod
    def _blank_notes_are_absent(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class RiskScore(BaseModel):
    """Score and tier produced by the risk scorer."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    score: int = Field(..., ge=0, le=100)
    tier: RiskTier
    factors: List[str] = Field(
        default_factory=list,
        description="Negative indicators that contributed to the score",
    )
