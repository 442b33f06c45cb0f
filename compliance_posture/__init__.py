"""
Compliance Posture Engine

Vendor risk scoring, control implementation posture, evidence lifecycle and
policy-to-control matching for compliance programs.
"""

import importlib.metadata

__version__ = importlib.metadata.version("compliance-posture")

from .engine import (
    EvidenceStore,
    FrameworkCatalog,
    PolicyMatcher,
    PostureAggregator,
    RiskRegister,
)
from .errors import (
    ConflictError,
    EngineError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    "ConflictError",
    "EngineError",
    "EvidenceStore",
    "ExternalServiceError",
    "FrameworkCatalog",
    "NotFoundError",
    "PolicyMatcher",
    "PostureAggregator",
    "RiskRegister",
    "ValidationError",
]
