"""
Compliance posture engine services.

- risk_scorer: vendor questionnaire -> score and tier (pure)
- risk_register: organization risk register and reusable catalog
- catalog: framework and control reference data
- evidence_store: evidence artifacts and their metadata
- posture: per-framework completion statistics and status edits
- policy_matcher: policy/control suggestions and accepted mappings
"""

from .catalog import FrameworkCatalog
from .evidence_store import EvidenceStore, generate_storage_key
from .policy_matcher import PolicyMatcher
from .posture import PostureAggregator, percentage
from .risk_register import RiskRegister, level_for, treatment_for
from .risk_scorer import score, tier_for

__all__ = [
    "EvidenceStore",
    "FrameworkCatalog",
    "PolicyMatcher",
    "PostureAggregator",
    "RiskRegister",
    "generate_storage_key",
    "level_for",
    "percentage",
    "score",
    "tier_for",
    "treatment_for",
]
