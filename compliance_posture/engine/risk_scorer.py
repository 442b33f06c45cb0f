"""
Vendor risk scoring.

Turns a due-diligence questionnaire into a score in [0, 100] and a tier by
adding a fixed weight for every negative indicator:

    Financial    not profitable last two years           +15
                 won't share financial statements         +10 (upon request: +5)
                 restructuring noted                       +5
    Security     no formal security policy                +20
                 no audit evidence                        +10
                 no business-continuity plan              +10
    Operational  no quality-management system             +10
                 no KPIs tracked                           +5
    Legal        no code of conduct                       +10
                 won't sign standard agreement            +15 (with modifications: +5)

The sum is capped at 100. Unanswered questions contribute nothing. The
function is pure: no I/O, no caching, safe to call on every form edit.
"""

from __future__ import annotations

from typing import Any, Callable, List, Mapping, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..schemas.enums import (
    AgreementWillingness,
    Disclosure,
    Presence,
    RiskTier,
    YesNo,
)
from ..schemas.questionnaire import RiskScore, VendorQuestionnaire

MAX_SCORE = 100

# Lower bound of each tier, highest first
TIER_THRESHOLDS: Tuple[Tuple[int, RiskTier], ...] = (
    (80, RiskTier.CRITICAL),
    (60, RiskTier.HIGH),
    (40, RiskTier.MEDIUM),
)

Indicator = Tuple[str, Callable[[VendorQuestionnaire], int]]


def _weight(condition: bool, points: int) -> int:
    return points if condition else 0


INDICATORS: Tuple[Indicator, ...] = (
    # Financial
    (
        "not_profitable_last_two_years",
        lambda a: _weight(a.profitable_last_two_years == YesNo.NO, 15),
    ),
    (
        "financial_statements_withheld",
        lambda a: {Disclosure.NO: 10, Disclosure.UPON_REQUEST: 5}.get(
            a.provide_financial_statements, 0
        ),
    ),
    ("restructuring_noted", lambda a: _weight(a.restructuring_notes is not None, 5)),
    # Security
    ("no_security_policy", lambda a: _weight(a.has_security_policy == YesNo.NO, 20)),
    ("no_audit_evidence", lambda a: _weight(a.security_audits == Presence.ABSENT, 10)),
    ("no_business_continuity_plan", lambda a: _weight(a.has_bcp == YesNo.NO, 10)),
    # Operational
    (
        "no_quality_management",
        lambda a: _weight(a.has_quality_management == YesNo.NO, 10),
    ),
    ("no_kpis_tracked", lambda a: _weight(a.kpis == Presence.ABSENT, 5)),
    # Legal
    ("no_code_of_conduct", lambda a: _weight(a.has_code_of_conduct == YesNo.NO, 10)),
    (
        "agreement_not_accepted",
        lambda a: {
            AgreementWillingness.NO: 15,
            AgreementWillingness.WITH_MODIFICATIONS: 5,
        }.get(a.willing_to_sign_agreement, 0),
    ),
)


def tier_for(score: int) -> RiskTier:
    """Tier for a score: >=80 Critical, >=60 High, >=40 Medium, else Low."""
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return RiskTier.LOW


def raw_score(answers: VendorQuestionnaire) -> int:
    """Uncapped sum of indicator weights."""
    return sum(weigh(answers) for _, weigh in INDICATORS)


def score(answers: Union[VendorQuestionnaire, Mapping[str, Any]]) -> RiskScore:
    """Score a questionnaire.

    Args:
        answers: A VendorQuestionnaire or a mapping of answers (snake_case or
            camelCase keys)

    Returns:
        RiskScore with the capped score, its tier and the triggered indicators

    Raises:
        ValidationError: if an answer is not one of the accepted choices
    """
    if not isinstance(answers, VendorQuestionnaire):
        try:
            answers = VendorQuestionnaire.model_validate(dict(answers))
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e)

    factors: List[str] = []
    total = 0
    for name, weigh in INDICATORS:
        points = weigh(answers)
        if points:
            factors.append(name)
            total += points

    capped = min(total, MAX_SCORE)
    return RiskScore(score=capped, tier=tier_for(capped), factors=factors)
