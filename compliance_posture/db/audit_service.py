"""
Audit Log Service.

Engine services call this next to every state change. Entries are added to the
caller's session and committed together with the change they describe, so an
audit row never exists for a change that was rolled back.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from ..schemas.primitives import generate_ulid, utc_now
from .audit_models import AuditLogModel


class AuditService:
    """Service for recording and querying audit log entries.

    Usage:
        audit = AuditService(db_session)
        audit.log_create("Evidence", row.id, row.to_dict(), actor_id="alice")
        db_session.commit()
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: str,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_kind: str,
        actor_id: str,
        organization_id: Optional[str],
        note: Optional[str],
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=generate_ulid(),
            ts=utc_now(),
            actor_kind=actor_kind,
            actor_id=actor_id,
            action=action,
            entity_kind=entity_kind,
            entity_id=entity_id,
            organization_id=organization_id,
            before=before,
            after=after,
            note=note,
        )
        self.db.add(entry)
        return entry

    def log_create(
        self,
        entity_kind: str,
        entity_id: str,
        after: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        organization_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the creation of an entity."""
        return self._record(
            "created", entity_kind, entity_id, None, after,
            actor_kind, actor_id, organization_id, note,
        )

    def log_update(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        after: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        organization_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log an update to an entity."""
        return self._record(
            "updated", entity_kind, entity_id, before, after,
            actor_kind, actor_id, organization_id, note,
        )

    def log_status_change(
        self,
        entity_kind: str,
        entity_id: str,
        old_status: Optional[str],
        new_status: str,
        actor_kind: str = "system",
        actor_id: str = "unknown",
        organization_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log a status change on an entity."""
        return self._record(
            "status_changed",
            entity_kind,
            entity_id,
            {"status": old_status},
            {"status": new_status},
            actor_kind,
            actor_id,
            organization_id,
            note or f"Status changed: {old_status} -> {new_status}",
        )

    def log_delete(
        self,
        entity_kind: str,
        entity_id: str,
        before: Dict[str, Any],
        actor_kind: str = "system",
        actor_id: str = "unknown",
        organization_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AuditLogModel:
        """Log the deletion of an entity."""
        return self._record(
            "deleted", entity_kind, entity_id, before, None,
            actor_kind, actor_id, organization_id, note,
        )

    def get_entity_history(
        self,
        entity_kind: str,
        entity_id: str,
        limit: int = 100,
    ) -> List[AuditLogModel]:
        """Return audit entries for one entity, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(desc(AuditLogModel.ts), desc(AuditLogModel.id))
            .limit(limit)
            .all()
        )

    def get_by_organization(
        self,
        organization_id: str,
        action: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditLogModel]:
        """Return audit entries scoped to one organization, newest first."""
        query = self.db.query(AuditLogModel).filter(
            AuditLogModel.organization_id == organization_id
        )
        if action:
            query = query.filter(AuditLogModel.action == action)
        return query.order_by(desc(AuditLogModel.ts), desc(AuditLogModel.id)).limit(limit).all()
