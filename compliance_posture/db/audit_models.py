"""
Audit Log Database Models.

Every state change the engine makes (status edits, evidence uploads and
deletions, accepted mappings, risk register edits) is recorded with
before/after snapshots and actor information.
"""

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    String,
    Text,
)

from ..schemas.enums import ActorKind
from ..schemas.primitives import utc_now
from .base import Base


audit_actor_kind_enum = Enum(*(kind.value for kind in ActorKind), name="audit_actor_kind")

audit_action_enum = Enum(
    "created",
    "updated",
    "status_changed",
    "deleted",
    name="audit_action",
)


class AuditLogModel(Base):
    """Audit log entry for one engine state change."""

    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True)

    ts = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        index=True,
    )

    # Who performed the action
    actor_kind = Column(audit_actor_kind_enum, nullable=False)
    actor_id = Column(String(128), nullable=False, index=True)

    action = Column(audit_action_enum, nullable=False, index=True)

    # What entity was affected
    entity_kind = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(128), nullable=False, index=True)

    # Organization scope, when the entity belongs to one
    organization_id = Column(String(128), nullable=True, index=True)

    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)

    note = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_log_entity", "entity_kind", "entity_id"),
        Index("ix_audit_log_org_ts", "organization_id", "ts"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dictionary."""
        return {
            "id": self.id,
            "ts": self.ts.isoformat() if self.ts else None,
            "actor_kind": self.actor_kind,
            "actor_id": self.actor_id,
            "action": self.action,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "organization_id": self.organization_id,
            "before": self.before,
            "after": self.after,
            "note": self.note,
        }
