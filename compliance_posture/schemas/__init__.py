"""
Typed records exchanged with the Compliance Posture engine.
"""

from .enums import (
    ActorKind,
    AgreementWillingness,
    Disclosure,
    ImplementationStatus,
    Presence,
    RiskLevel,
    RiskStatus,
    RiskTier,
    SuggestionStatus,
    YesNo,
)
from .evidence import EvidenceFile
from .framework import ControlDefinition, FrameworkDefinition
from .matching import (
    EmbeddingUpdate,
    MappingAccept,
    PolicyCreate,
    Suggestion,
    SuggestionResult,
)
from .posture import FrameworkPosture, PostureSummary, StatusChange
from .primitives import generate_ulid, normalize_choice, utc_now
from .questionnaire import RiskScore, VendorQuestionnaire
from .risk import (
    RiskAdopt,
    RiskAssessmentUpdate,
    RiskCreate,
    RiskStatusUpdate,
    risk_level_for,
)

__all__ = [
    "ActorKind",
    "AgreementWillingness",
    "ControlDefinition",
    "Disclosure",
    "EmbeddingUpdate",
    "EvidenceFile",
    "FrameworkDefinition",
    "FrameworkPosture",
    "ImplementationStatus",
    "MappingAccept",
    "PolicyCreate",
    "PostureSummary",
    "Presence",
    "RiskAdopt",
    "RiskAssessmentUpdate",
    "RiskCreate",
    "RiskLevel",
    "RiskScore",
    "RiskStatus",
    "RiskStatusUpdate",
    "RiskTier",
    "StatusChange",
    "Suggestion",
    "SuggestionResult",
    "SuggestionStatus",
    "VendorQuestionnaire",
    "YesNo",
    "generate_ulid",
    "normalize_choice",
    "risk_level_for",
    "utc_now",
]
