"""
Evidence artifact lifecycle.

Upload:
- Storage keys embed the control reference, a UTC timestamp and a random
  token, so accidental collisions are unlikely.
- If a key is occupied anyway (binary or metadata row), the upload fails with a
  ConflictError and nothing changes. The caller may resubmit the same
  ``storage_path`` with ``overwrite=True``; the binary is rewritten and the
  metadata row is upserted, never duplicated.

Delete is ordered, not atomic:
1. mark the row (``delete_requested_at``)
2. remove the binary
3. remove the row
A failure in step 2 leaves the row in place and marked; ``retry_pending_deletions``
finishes the job later. A binary that is already gone counts as removed.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import ControlModel, EvidenceModel, FrameworkModel
from ..errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from ..schemas.evidence import EvidenceFile
from ..schemas.primitives import utc_now
from ..storage import ObjectExistsError, ObjectStore

logger = structlog.get_logger()

KeyGenerator = Callable[[str, str, str, str], str]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_DOT_RUNS = re.compile(r"\.{2,}")


def _safe_segment(value: str, fallback: str = "item") -> str:
    cleaned = _DOT_RUNS.sub(".", _UNSAFE_CHARS.sub("_", value.strip())).strip("._")
    return cleaned or fallback


def evidence_prefix(organization_id: str) -> str:
    """Storage prefix owning all evidence of an organization."""
    return f"{_safe_segment(organization_id, 'org')}/evidence/"


def control_prefix(organization_id: str, framework_key: str, control_ref: str) -> str:
    """Storage prefix owning the evidence of one control."""
    return (
        f"{evidence_prefix(organization_id)}"
        f"{_safe_segment(framework_key, 'framework')}/"
        f"{_safe_segment(control_ref, 'control')}/"
    )


def generate_storage_key(
    organization_id: str,
    framework_key: str,
    control_ref: str,
    file_name: str,
    now: Optional[datetime] = None,
) -> str:
    """Build a storage key for a new artifact.

    Example: ``org-1/evidence/ISO27001/A.5.1/20260105T101500123456Z_9f3a1c2b_policy.pdf``
    """
    stamp = (now or utc_now()).strftime("%Y%m%dT%H%M%S%fZ")
    token = secrets.token_hex(4)
    return (
        f"{control_prefix(organization_id, framework_key, control_ref)}"
        f"{stamp}_{token}_{_safe_segment(file_name, 'file')}"
    )


class EvidenceStore:
    """Uploads, lists and deletes evidence against an ObjectStore + metadata table."""

    def __init__(
        self,
        db: Session,
        store: ObjectStore,
        audit: Optional[AuditService] = None,
        key_generator: KeyGenerator = generate_storage_key,
        max_bytes: Optional[int] = None,
    ):
        self.db = db
        self.store = store
        self.audit = audit or AuditService(db)
        self.key_generator = key_generator
        self.max_bytes = max_bytes

    def _control_exists(self, framework_key: str, control_ref: str) -> bool:
        return (
            self.db.query(ControlModel.id)
            .join(FrameworkModel, ControlModel.framework_id == FrameworkModel.id)
            .filter(
                FrameworkModel.key == framework_key,
                ControlModel.control_ref == control_ref,
            )
            .first()
            is not None
        )

    def _validate_upload(
        self,
        control_ref: str,
        framework_key: str,
        organization_id: str,
        file: EvidenceFile,
        uploaded_by: str,
    ) -> None:
        for name, value in (
            ("control_ref", control_ref),
            ("framework_key", framework_key),
            ("organization_id", organization_id),
            ("uploaded_by", uploaded_by),
        ):
            if not value or not value.strip():
                raise ValidationError("MISSING_FIELD", f"{name} is required", field=name)

        if self.max_bytes is not None and file.size > self.max_bytes:
            raise ValidationError(
                "FILE_TOO_LARGE",
                f"File is {file.size} bytes; the limit is {self.max_bytes}",
                field="file",
            )

        if not self._control_exists(framework_key, control_ref):
            raise NotFoundError(
                "CONTROL_NOT_FOUND",
                f"Control '{control_ref}' not found in framework '{framework_key}'",
                control_ref=control_ref,
                framework_key=framework_key,
            )

    def upload(
        self,
        control_ref: str,
        framework_key: str,
        organization_id: str,
        file: EvidenceFile,
        uploaded_by: str,
        overwrite: bool = False,
        storage_path: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> EvidenceModel:
        """Store an artifact and record its metadata.

        Args:
            control_ref: Control reference within the framework (e.g. "A.5.1")
            framework_key: Framework key (e.g. "ISO27001")
            organization_id: Owning organization
            file: The artifact; its size and type are recorded as given
            uploaded_by: Uploader identity
            overwrite: Replace an existing object at ``storage_path``
            storage_path: Reuse a specific key (after a conflict); generated otherwise
            notes: Optional free text

        Returns:
            The evidence metadata row

        Raises:
            ConflictError: the key is occupied and overwrite was not requested
            NotFoundError: the control does not exist in the framework
            ValidationError: missing fields, oversized file, foreign storage path
            ExternalServiceError: storage or database failure
        """
        self._validate_upload(control_ref, framework_key, organization_id, file, uploaded_by)

        if storage_path is None:
            path = self.key_generator(organization_id, framework_key, control_ref, file.name)
        else:
            path = storage_path
            if not path.startswith(control_prefix(organization_id, framework_key, control_ref)):
                raise ValidationError(
                    "FOREIGN_STORAGE_PATH",
                    f"Storage path '{path}' does not belong to control '{control_ref}' "
                    f"of framework '{framework_key}' in organization '{organization_id}'",
                    storage_path=path,
                )

        log = logger.bind(
            org_id=organization_id,
            framework_key=framework_key,
            control_ref=control_ref,
            storage_path=path,
        )

        existing = (
            self.db.query(EvidenceModel).filter(EvidenceModel.storage_path == path).first()
        )
        if existing is not None and (
            existing.organization_id != organization_id
            or existing.framework_key != framework_key
            or existing.control_ref != control_ref
        ):
            raise ValidationError(
                "FOREIGN_STORAGE_PATH",
                f"Evidence at '{path}' belongs to control '{existing.control_ref}' "
                f"of framework '{existing.framework_key}'",
                storage_path=path,
            )

        if not overwrite:
            if existing is not None or self.store.exists(path):
                log.info("evidence_upload_conflict")
                raise self._conflict(path)
            try:
                self.store.write(path, file.data, overwrite=False)
            except ObjectExistsError:
                log.info("evidence_upload_conflict")
                raise self._conflict(path)
        else:
            self.store.write(path, file.data, overwrite=True)

        if existing is not None:
            before = existing.to_dict()
            existing.file_name = file.name
            existing.file_type = file.content_type
            existing.file_size = file.size
            existing.uploaded_by = uploaded_by
            existing.notes = notes if notes is not None else existing.notes
            # A confirmed overwrite cancels an unfinished deletion of the old binary
            existing.delete_requested_at = None
            existing.updated_at = utc_now()
            evidence = existing
            self.db.flush()
            self.audit.log_update(
                entity_kind="Evidence",
                entity_id=evidence.id,
                before=before,
                after=evidence.to_dict(),
                actor_kind="human",
                actor_id=uploaded_by,
                organization_id=organization_id,
                note="Evidence overwritten",
            )
        else:
            evidence = EvidenceModel(
                organization_id=organization_id,
                framework_key=framework_key,
                control_ref=control_ref,
                storage_path=path,
                file_name=file.name,
                file_type=file.content_type,
                file_size=file.size,
                uploaded_by=uploaded_by,
                notes=notes,
            )
            self.db.add(evidence)
            try:
                self.db.flush()
            except IntegrityError:
                # A concurrent upload claimed the same key between our checks
                self.db.rollback()
                raise self._conflict(path)
            self.audit.log_create(
                entity_kind="Evidence",
                entity_id=evidence.id,
                after=evidence.to_dict(),
                actor_kind="human",
                actor_id=uploaded_by,
                organization_id=organization_id,
            )

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error("evidence_metadata_write_failed", error=str(e))
            raise ExternalServiceError("DATABASE_ERROR", str(e), storage_path=path)

        self.db.refresh(evidence)
        log.info(
            "evidence_uploaded",
            evidence_id=evidence.id,
            overwritten=existing is not None,
            file_size=evidence.file_size,
        )
        return evidence

    @staticmethod
    def _conflict(path: str) -> ConflictError:
        return ConflictError(
            "EVIDENCE_PATH_EXISTS",
            f"Evidence already exists at '{path}'. Resubmit with overwrite=true to replace it.",
            storage_path=path,
        )

    def get(self, evidence_id: str) -> EvidenceModel:
        evidence = (
            self.db.query(EvidenceModel).filter(EvidenceModel.id == evidence_id).first()
        )
        if not evidence:
            raise NotFoundError(
                "EVIDENCE_NOT_FOUND",
                f"Evidence '{evidence_id}' not found",
                evidence_id=evidence_id,
            )
        return evidence

    def delete(self, evidence_id: str, actor_id: str = "evidence-store") -> None:
        """Delete an artifact: binary first, then its metadata row.

        Raises:
            NotFoundError: no such evidence row
            ExternalServiceError: the binary could not be removed (row kept)
                or the row could not be removed after the binary was
        """
        evidence = self.get(evidence_id)
        log = logger.bind(evidence_id=evidence.id, storage_path=evidence.storage_path)

        if evidence.delete_requested_at is None:
            evidence.delete_requested_at = utc_now()
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                raise ExternalServiceError("DATABASE_ERROR", str(e), evidence_id=evidence_id)

        try:
            removed = self.store.delete(evidence.storage_path)
        except ExternalServiceError:
            log.warning("evidence_delete_binary_failed")
            raise

        before = evidence.to_dict()
        organization_id = evidence.organization_id
        self.db.delete(evidence)
        self.audit.log_delete(
            entity_kind="Evidence",
            entity_id=evidence_id,
            before=before,
            actor_kind="human",
            actor_id=actor_id,
            organization_id=organization_id,
        )
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error("evidence_delete_metadata_failed", error=str(e))
            raise ExternalServiceError("DATABASE_ERROR", str(e), evidence_id=evidence_id)

        log.info("evidence_deleted", binary_was_present=removed)

    def pending_deletions(self) -> List[EvidenceModel]:
        """Rows whose deletion started but did not finish."""
        return (
            self.db.query(EvidenceModel)
            .filter(EvidenceModel.delete_requested_at.isnot(None))
            .order_by(EvidenceModel.delete_requested_at)
            .all()
        )

    def retry_pending_deletions(self, actor_id: str = "evidence-store") -> Dict[str, object]:
        """Finish interrupted deletions.

        Returns:
            {"purged": [ids], "failed": {id: message}}; failed rows stay marked
        """
        purged: List[str] = []
        failed: Dict[str, str] = {}
        for evidence_id in [row.id for row in self.pending_deletions()]:
            try:
                self.delete(evidence_id, actor_id=actor_id)
                purged.append(evidence_id)
            except ExternalServiceError as e:
                failed[evidence_id] = e.message

        logger.info("evidence_deletion_retry", purged=len(purged), failed=len(failed))
        return {"purged": purged, "failed": failed}

    def list_for_control(
        self,
        control_ref: str,
        framework_key: str,
        organization_id: str,
    ) -> List[EvidenceModel]:
        """Evidence for one (control, framework, organization), newest first.

        Rows with an unfinished deletion are left out.
        """
        return (
            self.db.query(EvidenceModel)
            .filter(
                EvidenceModel.organization_id == organization_id,
                EvidenceModel.framework_key == framework_key,
                EvidenceModel.control_ref == control_ref,
                EvidenceModel.delete_requested_at.is_(None),
            )
            .order_by(desc(EvidenceModel.created_at), desc(EvidenceModel.id))
            .all()
        )

    def counts_by_control(self, framework_key: str, organization_id: str) -> Dict[str, int]:
        """Number of evidence rows per control reference, excluding pending deletions."""
        rows = (
            self.db.query(EvidenceModel.control_ref, func.count(EvidenceModel.id))
            .filter(
                EvidenceModel.organization_id == organization_id,
                EvidenceModel.framework_key == framework_key,
                EvidenceModel.delete_requested_at.is_(None),
            )
            .group_by(EvidenceModel.control_ref)
            .all()
        )
        return {control_ref: count for control_ref, count in rows}

    def download_uri(self, evidence_id: str) -> str:
        """URI of the stored binary for an evidence row."""
        return self.store.uri_for(self.get(evidence_id).storage_path)
