"""
Framework and control reference data.

Loading is idempotent: frameworks are matched by key and controls by
``control_ref``, so re-loading a catalog file updates names, texts and
embeddings in place without breaking implementation rows or mappings.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.models import ControlModel, FrameworkModel
from ..errors import ExternalServiceError, NotFoundError, ValidationError
from ..schemas.framework import FrameworkDefinition
from ..vector import validate_embedding

logger = structlog.get_logger()


class FrameworkCatalog:
    """Reads and loads frameworks and their controls."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ExternalServiceError("DATABASE_ERROR", str(e))

    def load(
        self, definition: Union[FrameworkDefinition, Mapping[str, Any]]
    ) -> FrameworkModel:
        """Insert or update a framework and its controls."""
        if not isinstance(definition, FrameworkDefinition):
            try:
                definition = FrameworkDefinition.model_validate(dict(definition))
            except PydanticValidationError as e:
                raise ValidationError.from_pydantic(e)

        framework = (
            self.db.query(FrameworkModel).filter(FrameworkModel.key == definition.key).first()
        )
        if framework is None:
            framework = FrameworkModel(key=definition.key, name=definition.name)
            self.db.add(framework)
        framework.name = definition.name
        framework.description = definition.description
        self.db.flush()

        existing = {c.control_ref: c for c in framework.controls}
        created = 0
        for item in definition.controls:
            control = existing.get(item.control_ref)
            if control is None:
                control = ControlModel(framework_id=framework.id, control_ref=item.control_ref)
                self.db.add(control)
                created += 1
            control.control_name = item.control_name
            control.control_text = item.control_text
            control.chapter = item.chapter
            control.guidance = item.guidance
            if item.embedding is not None:
                control.embedding = validate_embedding(item.embedding)

        self._commit()
        self.db.refresh(framework)
        logger.info(
            "framework_loaded",
            framework_key=framework.key,
            controls=len(definition.controls),
            created=created,
        )
        return framework

    def get(self, framework_key: str) -> FrameworkModel:
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

    def list_frameworks(self) -> List[FrameworkModel]:
        return self.db.query(FrameworkModel).order_by(FrameworkModel.key).all()

    def controls(self, framework_key: str) -> List[ControlModel]:
        return list(self.get(framework_key).controls)

    def find_control(self, framework_key: str, control_ref: str) -> Optional[ControlModel]:
        return (
            self.db.query(ControlModel)
            .join(FrameworkModel, ControlModel.framework_id == FrameworkModel.id)
            .filter(FrameworkModel.key == framework_key, ControlModel.control_ref == control_ref)
            .first()
        )

    def set_control_embedding(self, control_id: str, embedding: Sequence[float]) -> ControlModel:
        """Store a precomputed embedding of a control's text."""
        vector = validate_embedding(embedding)
        control = self.db.query(ControlModel).filter(ControlModel.id == control_id).first()
        if not control:
            raise NotFoundError(
                "CONTROL_NOT_FOUND", f"Control '{control_id}' not found", control_id=control_id
            )
        control.embedding = vector
        self._commit()
        self.db.refresh(control)
        return control
