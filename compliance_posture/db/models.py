"""
SQLAlchemy models for frameworks, controls, implementations, evidence, risks,
policies and policy/control mappings.

Following the same conventions as the audit log:
- String ULID primary keys
- Enumerated columns mirror ``schemas/enums.py``
- Embeddings stored as JSON arrays of floats so SQLite and PostgreSQL behave alike
- Derived values (risk score/level) are properties, never columns
"""

from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..schemas.enums import RiskLevel
from ..schemas.primitives import generate_ulid, utc_now
from ..schemas.risk import risk_level_for
from .base import Base


implementation_status_enum = Enum(
    "not_started",
    "in_progress",
    "implemented",
    "exempt",
    name="implementation_status",
)

risk_status_enum = Enum(
    "Open",
    "In Progress",
    "Mitigated",
    "Closed",
    "Accepted",
    name="risk_status",
)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class FrameworkModel(Base):
    """A compliance standard. Reference data."""

    __tablename__ = "frameworks"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    key = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    controls = relationship(
        "ControlModel",
        back_populates="framework",
        order_by="ControlModel.control_ref",
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "description": self.description,
            "created_at": _iso(self.created_at),
        }


class ControlModel(Base):
    """A single checkable requirement within a framework. Reference data."""

    __tablename__ = "framework_controls"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    framework_id = Column(
        String(128), ForeignKey("frameworks.id"), nullable=False, index=True
    )
    control_ref = Column(String(64), nullable=False)
    control_name = Column(String(512), nullable=False)
    control_text = Column(Text, nullable=False, default="")
    chapter = Column(String(256), nullable=True)
    guidance = Column(Text, nullable=True)

    # Precomputed embedding of the control text (list of floats)
    embedding = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    framework = relationship("FrameworkModel", back_populates="controls")

    __table_args__ = (
        UniqueConstraint("framework_id", "control_ref", name="uq_framework_control_ref"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "framework_id": self.framework_id,
            "framework_key": self.framework.key if self.framework else None,
            "control_ref": self.control_ref,
            "control_name": self.control_name,
            "control_text": self.control_text,
            "chapter": self.chapter,
            "guidance": self.guidance,
            "has_embedding": bool(self.embedding),
        }


class ControlImplementationModel(Base):
    """Latest implementation status of a control for one organization.

    Updated in place; status history lives in the audit log only.
    """

    __tablename__ = "control_implementations"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    control_id = Column(
        String(128), ForeignKey("framework_controls.id"), nullable=False, index=True
    )
    organization_id = Column(String(128), nullable=False, index=True)
    status = Column(implementation_status_enum, nullable=False, default="not_started")
    notes = Column(Text, nullable=True)
    updated_by = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    control = relationship("ControlModel")

    __table_args__ = (
        UniqueConstraint("control_id", "organization_id", name="uq_control_implementation_org"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "control_id": self.control_id,
            "organization_id": self.organization_id,
            "status": self.status,
            "notes": self.notes,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class EvidenceModel(Base):
    """Metadata row for one stored evidence artifact."""

    __tablename__ = "evidence"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    organization_id = Column(String(128), nullable=False)
    framework_key = Column(String(64), nullable=False)
    control_ref = Column(String(64), nullable=False)

    storage_path = Column(String(1024), nullable=False, unique=True)
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(128), nullable=False)
    file_size = Column(Integer, nullable=False)
    uploaded_by = Column(String(128), nullable=False)
    notes = Column(Text, nullable=True)

    # Set when a deletion starts; cleared by removing the row or by an overwrite
    delete_requested_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        Index("ix_evidence_slot", "organization_id", "framework_key", "control_ref"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "framework_key": self.framework_key,
            "control_ref": self.control_ref,
            "storage_path": self.storage_path,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "uploaded_by": self.uploaded_by,
            "notes": self.notes,
            "delete_requested_at": _iso(self.delete_requested_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class RiskModel(Base):
    """Catalog risk (reusable, framework-scoped) or organization register risk."""

    __tablename__ = "risks"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    organization_id = Column(String(128), nullable=True, index=True)
    framework_key = Column(String(64), nullable=True, index=True)
    is_catalog = Column(Boolean, nullable=False, default=False)
    source_risk_id = Column(String(128), ForeignKey("risks.id"), nullable=True)

    title = Column(String(256), nullable=False)
    category = Column(String(128), nullable=False)
    description = Column(Text, nullable=False, default="")
    impact = Column(Integer, nullable=False)
    likelihood = Column(Integer, nullable=False)
    status = Column(risk_status_enum, nullable=False, default="Open")
    owner = Column(String(128), nullable=True)
    existing_controls = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    @property
    def score(self) -> int:
        return self.impact * self.likelihood

    @property
    def level(self) -> RiskLevel:
        return risk_level_for(self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "framework_key": self.framework_key,
            "is_catalog": self.is_catalog,
            "source_risk_id": self.source_risk_id,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "impact": self.impact,
            "likelihood": self.likelihood,
            "score": self.score,
            "level": self.level.value,
            "status": self.status,
            "owner": self.owner,
            "existing_controls": self.existing_controls,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class PolicyModel(Base):
    """An uploaded organization policy with its precomputed embedding."""

    __tablename__ = "policies"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    organization_id = Column(String(128), nullable=False, index=True)
    title = Column(String(512), nullable=False)
    embedding = Column(JSON(none_as_null=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    mappings = relationship("PolicyControlMappingModel", back_populates="policy")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "has_embedding": bool(self.embedding),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class PolicyControlMappingModel(Base):
    """Accepted link between a policy and a framework control."""

    __tablename__ = "policy_control_mappings"

    id = Column(String(128), primary_key=True, default=generate_ulid)
    policy_id = Column(String(128), ForeignKey("policies.id"), nullable=False, index=True)
    control_id = Column(
        String(128), ForeignKey("framework_controls.id"), nullable=False, index=True
    )
    confidence = Column(Float, nullable=False)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    policy = relationship("PolicyModel", back_populates="mappings")
    control = relationship("ControlModel")

    __table_args__ = (
        UniqueConstraint("policy_id", "control_id", name="uq_policy_control"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "policy_id": self.policy_id,
            "control_id": self.control_id,
            "confidence": self.confidence,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }
