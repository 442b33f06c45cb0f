"""
Risk register and reusable risk catalog.

Catalog entries are framework-scoped templates shared by every organization
and are read-only; organizations adopt them into their own register. Register
entries carry impact and likelihood (1-5); score and level are derived on
every read and never stored.
"""

from typing import Dict, List, Optional, Union

import structlog
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import RiskModel
from ..errors import ExternalServiceError, NotFoundError, ValidationError
from ..schemas.enums import RiskLevel, RiskStatus
from ..schemas.primitives import utc_now
from ..schemas.risk import RiskCreate, risk_level_for

logger = structlog.get_logger()

MITIGATION_SUGGESTIONS: Dict[RiskLevel, List[str]] = {
    RiskLevel.HIGH: [
        "Eliminate the risk by changing processes or avoiding the activity",
        "Implement strong controls with regular monitoring and reporting",
        "Transfer risk through insurance or outsourcing",
        "Develop contingency plans for when risk occurs",
    ],
    RiskLevel.MEDIUM: [
        "Implement controls to reduce likelihood or impact",
        "Increase monitoring and oversight",
        "Develop response plans",
        "Consider risk transfer options",
    ],
    RiskLevel.LOW: [
        "Accept the risk with current controls",
        "Monitor periodically for changes",
        "Document for awareness",
        "Consider cost-effective simple controls",
    ],
}

TREATMENT_PLANS: Dict[RiskLevel, str] = {
    RiskLevel.HIGH: (
        "Must be treated immediately. Senior management attention required. "
        "Significant resources allocated."
    ),
    RiskLevel.MEDIUM: (
        "Should be treated within reasonable timeframe. "
        "Management attention recommended."
    ),
    RiskLevel.LOW: "May be accepted or treated as opportunities allow. Routine management.",
}


def level_for(impact: int, likelihood: int) -> RiskLevel:
    """Level of an impact/likelihood pair, validating both are in 1..5."""
    for name, value in (("impact", impact), ("likelihood", likelihood)):
        if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
            raise ValidationError(
                "OUT_OF_RANGE", f"{name} must be an integer between 1 and 5", field=name
            )
    return risk_level_for(impact * likelihood)


def treatment_for(level: Union[RiskLevel, str]) -> Dict[str, object]:
    """Mitigation suggestions and treatment plan for a level."""
    level = RiskLevel(level)
    return {
        "level": level.value,
        "mitigations": list(MITIGATION_SUGGESTIONS[level]),
        "treatment_plan": TREATMENT_PLANS[level],
    }


class RiskRegister:
    """Service for catalog and organization risk entries."""

    def __init__(self, db: Session, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e))

    def get(self, risk_id: str) -> RiskModel:
        risk = self.db.query(RiskModel).filter(RiskModel.id == risk_id).first()
        if not risk:
            raise NotFoundError("RISK_NOT_FOUND", f"Risk '{risk_id}' not found", risk_id=risk_id)
        return risk

    def _get_register_entry(self, risk_id: str) -> RiskModel:
        risk = self.get(risk_id)
        if risk.is_catalog:
            raise ValidationError(
                "CATALOG_READ_ONLY",
                f"Risk '{risk_id}' is a catalog entry and cannot be modified",
                risk_id=risk_id,
            )
        return risk

    def create(
        self,
        organization_id: str,
        risk: RiskCreate,
        actor_id: str = "risk-register",
        framework_key: Optional[str] = None,
        source_risk_id: Optional[str] = None,
    ) -> RiskModel:
        """Add a risk to an organization's register.

        Low-level risks start as Accepted unless a status is given.
        """
        level = level_for(risk.impact, risk.likelihood)
        status = risk.status or (
            RiskStatus.ACCEPTED if level == RiskLevel.LOW else RiskStatus.OPEN
        )
        db_risk = RiskModel(
            organization_id=organization_id,
            framework_key=framework_key,
            is_catalog=False,
            source_risk_id=source_risk_id,
            title=risk.title,
            category=risk.category,
            description=risk.description,
            impact=risk.impact,
            likelihood=risk.likelihood,
            status=status.value,
            owner=risk.owner,
            existing_controls=risk.existing_controls,
        )
        self.db.add(db_risk)
        self.db.flush()
        self.audit.log_create(
            entity_kind="Risk",
            entity_id=db_risk.id,
            after=db_risk.to_dict(),
            actor_kind="human",
            actor_id=actor_id,
            organization_id=organization_id,
        )
        self._commit()
        self.db.refresh(db_risk)

        logger.info(
            "risk_created",
            risk_id=db_risk.id,
            org_id=organization_id,
            score=db_risk.score,
            level=db_risk.level.value,
        )
        return db_risk

    def create_catalog_entry(
        self,
        risk: RiskCreate,
        framework_key: Optional[str] = None,
    ) -> RiskModel:
        """Add a read-only catalog risk."""
        level_for(risk.impact, risk.likelihood)
        db_risk = RiskModel(
            organization_id=None,
            framework_key=framework_key,
            is_catalog=True,
            title=risk.title,
            category=risk.category,
            description=risk.description,
            impact=risk.impact,
            likelihood=risk.likelihood,
            status=(risk.status or RiskStatus.OPEN).value,
            owner=None,
            existing_controls=risk.existing_controls,
        )
        self.db.add(db_risk)
        self._commit()
        self.db.refresh(db_risk)
        return db_risk

    def adopt(
        self,
        catalog_risk_id: str,
        organization_id: str,
        actor_id: str = "risk-register",
    ) -> RiskModel:
        """Copy a catalog risk into an organization's register."""
        source = self.get(catalog_risk_id)
        if not source.is_catalog:
            raise ValidationError(
                "NOT_A_CATALOG_RISK",
                f"Risk '{catalog_risk_id}' is not a catalog entry",
                risk_id=catalog_risk_id,
            )

        adopted = self.create(
            organization_id,
            RiskCreate(
                title=source.title,
                category=source.category,
                description=source.description,
                impact=source.impact,
                likelihood=source.likelihood,
                existing_controls=source.existing_controls,
            ),
            actor_id=actor_id,
            framework_key=source.framework_key,
            source_risk_id=source.id,
        )
        return adopted

    def update_assessment(
        self,
        risk_id: str,
        impact: int,
        likelihood: int,
        actor_id: str = "risk-register",
    ) -> RiskModel:
        """Re-assess impact and likelihood; score and level follow."""
        level_for(impact, likelihood)
        risk = self._get_register_entry(risk_id)
        before = risk.to_dict()

        risk.impact = impact
        risk.likelihood = likelihood
        risk.updated_at = utc_now()
        self.db.flush()

        self.audit.log_update(
            entity_kind="Risk",
            entity_id=risk.id,
            before=before,
            after=risk.to_dict(),
            actor_kind="human",
            actor_id=actor_id,
            organization_id=risk.organization_id,
        )
        self._commit()
        self.db.refresh(risk)
        return risk

    def set_status(
        self,
        risk_id: str,
        status: Union[RiskStatus, str],
        actor_id: str = "risk-register",
    ) -> RiskModel:
        """Move a register risk to any status."""
        try:
            status = RiskStatus(status)
        except ValueError:
            raise ValidationError(
                "INVALID_STATUS",
                f"Unknown risk status '{status}'. "
                f"Allowed: {', '.join(s.value for s in RiskStatus)}",
            )

        risk = self._get_register_entry(risk_id)
        old_status = risk.status
        risk.status = status.value
        risk.updated_at = utc_now()

        if old_status != risk.status:
            self.audit.log_status_change(
                entity_kind="Risk",
                entity_id=risk.id,
                old_status=old_status,
                new_status=risk.status,
                actor_kind="human",
                actor_id=actor_id,
                organization_id=risk.organization_id,
            )
        self._commit()
        self.db.refresh(risk)
        return risk

    def list(
        self,
        organization_id: str,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[RiskModel]:
        """List an organization's register entries, newest first."""
        query = self.db.query(RiskModel).filter(
            RiskModel.organization_id == organization_id,
            RiskModel.is_catalog.is_(False),
        )
        if status:
            query = query.filter(RiskModel.status == status)
        return (
            query.order_by(desc(RiskModel.created_at), desc(RiskModel.id))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def catalog(self, framework_key: Optional[str] = None) -> List[RiskModel]:
        """List catalog entries, optionally scoped to a framework."""
        query = self.db.query(RiskModel).filter(RiskModel.is_catalog.is_(True))
        if framework_key:
            query = query.filter(RiskModel.framework_key == framework_key)
        return query.order_by(RiskModel.category, RiskModel.title).all()
