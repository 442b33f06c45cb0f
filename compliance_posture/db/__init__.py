"""
Database package for the Compliance Posture engine.
"""

from .audit_models import AuditLogModel
from .audit_service import AuditService
from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import (
    ControlImplementationModel,
    ControlModel,
    EvidenceModel,
    FrameworkModel,
    PolicyControlMappingModel,
    PolicyModel,
    RiskModel,
)

__all__ = [
    "AuditLogModel",
    "AuditService",
    "Base",
    "ControlImplementationModel",
    "ControlModel",
    "EvidenceModel",
    "FrameworkModel",
    "PolicyControlMappingModel",
    "PolicyModel",
    "RiskModel",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
]
