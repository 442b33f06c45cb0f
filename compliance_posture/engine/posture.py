"""
Per-framework completion statistics for an organization.

Posture is a read model: every call recomputes from the relational store and
nothing is cached here. Controls without an implementation row for the
organization count as ``not_started``.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Union

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import (
    ControlImplementationModel,
    ControlModel,
    EvidenceModel,
    FrameworkModel,
    PolicyControlMappingModel,
    PolicyModel,
)
from ..errors import ExternalServiceError, NotFoundError, ValidationError
from ..schemas.enums import ImplementationStatus
from ..schemas.posture import FrameworkPosture, PostureSummary
from ..schemas.primitives import utc_now

logger = structlog.get_logger()


def percentage(count: int, total: int) -> int:
    """Share of ``count`` in ``total`` as a whole percentage, halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor(100 * count / total + 0.5))


class PostureAggregator:
    """Computes compliance posture and records control status edits."""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def _framework(self, framework_key: str) -> FrameworkModel:
        framework = (
            self.db.query(FrameworkModel).filter(FrameworkModel.key == framework_key).first()
        )
        if not framework:
            raise NotFoundError(
                "FRAMEWORK_NOT_FOUND",
                f"Framework '{framework_key}' not found",
                framework_key=framework_key,
            )
        return framework

    def _status_counts(
        self, framework: FrameworkModel, organization_id: str
    ) -> Dict[ImplementationStatus, int]:
        rows = (
            self.db.query(ControlModel.id, ControlImplementationModel.status)
            .outerjoin(
                ControlImplementationModel,
                (ControlImplementationModel.control_id == ControlModel.id)
                & (ControlImplementationModel.organization_id == organization_id),
            )
            .filter(ControlModel.framework_id == framework.id)
            .all()
        )
        counts = {status: 0 for status in ImplementationStatus}
        for _, status in rows:
            counts[ImplementationStatus(status or ImplementationStatus.NOT_STARTED.value)] += 1
        return counts

    def _evidence_count(self, framework_key: str, organization_id: str) -> int:
        return (
            self.db.query(func.count(EvidenceModel.id))
            .filter(
                EvidenceModel.organization_id == organization_id,
                EvidenceModel.framework_key == framework_key,
                EvidenceModel.delete_requested_at.is_(None),
            )
            .scalar()
            or 0
        )

    def _mapped_control_count(self, framework: FrameworkModel, organization_id: str) -> int:
        return (
            self.db.query(func.count(func.distinct(PolicyControlMappingModel.control_id)))
            .join(PolicyModel, PolicyControlMappingModel.policy_id == PolicyModel.id)
            .join(ControlModel, PolicyControlMappingModel.control_id == ControlModel.id)
            .filter(
                PolicyModel.organization_id == organization_id,
                ControlModel.framework_id == framework.id,
            )
            .scalar()
            or 0
        )

    def framework_posture(self, framework_key: str, organization_id: str) -> FrameworkPosture:
        framework = self._framework(framework_key)
        counts = self._status_counts(framework, organization_id)
        total = sum(counts.values())

        return FrameworkPosture(
            framework_key=framework.key,
            name=framework.name,
            total=total,
            implemented=percentage(counts[ImplementationStatus.IMPLEMENTED], total),
            in_progress=percentage(counts[ImplementationStatus.IN_PROGRESS], total),
            not_started=percentage(counts[ImplementationStatus.NOT_STARTED], total),
            exempt=percentage(counts[ImplementationStatus.EXEMPT], total),
            counts=counts,
            evidence=self._evidence_count(framework.key, organization_id),
            mapped_controls=self._mapped_control_count(framework, organization_id),
        )

    def aggregate(
        self, framework_keys: Iterable[str], organization_id: str
    ) -> Dict[str, FrameworkPosture]:
        """Posture per framework.

        Args:
            framework_keys: Frameworks to include
            organization_id: Organization whose implementation rows are counted

        Returns:
            Dict of framework key to FrameworkPosture, in the order requested

        Raises:
            NotFoundError: if any framework key is unknown
        """
        keys: List[str] = list(dict.fromkeys(framework_keys))
        result = {key: self.framework_posture(key, organization_id) for key in keys}
        logger.debug("posture_aggregated", org_id=organization_id, frameworks=keys)
        return result

    def summary(self, framework_keys: Iterable[str], organization_id: str) -> PostureSummary:
        """Overall compliance percentage across frameworks plus their postures."""
        frameworks = self.aggregate(framework_keys, organization_id)
        total = sum(p.total for p in frameworks.values())
        implemented = sum(
            p.counts.get(ImplementationStatus.IMPLEMENTED, 0) for p in frameworks.values()
        )
        return PostureSummary(
            organization_id=organization_id,
            compliance_percentage=percentage(implemented, total),
            total_controls=total,
            implemented_controls=implemented,
            frameworks=frameworks,
        )

    def set_status(
        self,
        control_id: str,
        organization_id: str,
        status: Union[ImplementationStatus, str],
        notes: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> ControlImplementationModel:
        """Set an organization's implementation status for a control.

        Any transition is allowed. Concurrent edits are last-write-wins.

        Raises:
            ValidationError: unknown status or missing organization
            NotFoundError: unknown control
        """
        try:
            status = ImplementationStatus(status)
        except ValueError:
            raise ValidationError(
                "INVALID_STATUS",
                f"Unknown implementation status '{status}'. "
                f"Allowed: {', '.join(s.value for s in ImplementationStatus)}",
                field="status",
            )
        if not organization_id or not organization_id.strip():
            raise ValidationError(
                "MISSING_FIELD", "organization_id is required", field="organization_id"
            )

        control = self.db.query(ControlModel).filter(ControlModel.id == control_id).first()
        if not control:
            raise NotFoundError(
                "CONTROL_NOT_FOUND", f"Control '{control_id}' not found", control_id=control_id
            )

        try:
            row = self._upsert_status(control, organization_id, status, notes, updated_by)
        except IntegrityError:
            # Another writer inserted the row first; apply ours on top of theirs
            self.db.rollback()
            row = self._upsert_status(control, organization_id, status, notes, updated_by)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e), control_id=control_id)

        self.db.refresh(row)
        logger.info(
            "control_status_set",
            org_id=organization_id,
            control_id=control_id,
            control_ref=control.control_ref,
            status=row.status,
        )
        return row

    def _upsert_status(
        self,
        control: ControlModel,
        organization_id: str,
        status: ImplementationStatus,
        notes: Optional[str],
        updated_by: Optional[str],
    ) -> ControlImplementationModel:
        row = (
            self.db.query(ControlImplementationModel)
            .filter(
                ControlImplementationModel.control_id == control.id,
                ControlImplementationModel.organization_id == organization_id,
            )
            .first()
        )
        actor_id = updated_by or "posture"

        if row is None:
            row = ControlImplementationModel(
                control_id=control.id,
                organization_id=organization_id,
                status=status.value,
                notes=notes,
                updated_by=updated_by,
            )
            self.db.add(row)
            self.db.flush()
            self.audit.log_create(
                entity_kind="ControlImplementation",
                entity_id=row.id,
                after=row.to_dict(),
                actor_kind="human",
                actor_id=actor_id,
                organization_id=organization_id,
            )
            return row

        old_status = row.status
        row.status = status.value
        if notes is not None:
            row.notes = notes
        row.updated_by = updated_by
        row.updated_at = utc_now()
        self.db.flush()

        if old_status != row.status:
            self.audit.log_status_change(
                entity_kind="ControlImplementation",
                entity_id=row.id,
                old_status=old_status,
                new_status=row.status,
                actor_kind="human",
                actor_id=actor_id,
                organization_id=organization_id,
            )
        return row
