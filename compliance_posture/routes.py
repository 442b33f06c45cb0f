"""
Compliance Posture API routes.

Handlers are thin: they build the engine service for the request's session and
return ``to_dict()`` views. Engine errors propagate to the exception handler
registered in ``api.py``.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.audit_service import AuditService
from .db.base import get_db
from .engine.catalog import FrameworkCatalog
from .engine.evidence_store import EvidenceStore
from .engine.policy_matcher import PolicyMatcher
from .engine.posture import PostureAggregator
from .engine.risk_register import RiskRegister, treatment_for
from .engine.risk_scorer import score
from .errors import ValidationError
from .schemas.enums import RiskLevel
from .schemas.evidence import EvidenceFile
from .schemas.framework import FrameworkDefinition
from .schemas.matching import EmbeddingUpdate, MappingAccept, PolicyCreate
from .schemas.posture import StatusChange
from .schemas.risk import RiskAdopt, RiskAssessmentUpdate, RiskCreate, RiskStatusUpdate
from .storage import ObjectStore, create_object_store
from .vector import SqlVectorIndex, VectorIndex

router = APIRouter()

_object_store: Optional[ObjectStore] = None


def get_object_store() -> ObjectStore:
    """Dependency returning the process-wide evidence object store."""
    global _object_store
    if _object_store is None:
        _object_store = create_object_store(get_settings().object_store_uri)
    return _object_store


def get_vector_index(db: Session = Depends(get_db)) -> VectorIndex:
    return SqlVectorIndex(db)


# =============================================================================
# Risk Endpoints
# =============================================================================


@router.post("/risk/score", tags=["risk"])
async def score_questionnaire(answers: Dict[str, Any]) -> Dict[str, Any]:
    """Score a vendor questionnaire (camelCase or snake_case keys)."""
    return score(answers).model_dump(mode="json")


@router.get("/risk/treatment/{level}", tags=["risk"])
async def get_treatment(level: RiskLevel) -> Dict[str, Any]:
    return treatment_for(level)


@router.post("/risks", status_code=201, tags=["risk"])
async def create_risk(
    risk: RiskCreate,
    organization_id: str = Query(..., min_length=1),
    actor_id: str = Query("api"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Add a risk to an organization's register."""
    return RiskRegister(db).create(organization_id, risk, actor_id=actor_id).to_dict()


@router.get("/risks", tags=["risk"])
async def list_risks(
    organization_id: str = Query(..., min_length=1),
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    risks = RiskRegister(db).list(organization_id, status=status, limit=limit, offset=offset)
    return [r.to_dict() for r in risks]


@router.get("/risks/catalog", tags=["risk"])
async def list_catalog(
    framework_key: Optional[str] = None,
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in RiskRegister(db).catalog(framework_key)]


@router.post("/risks/catalog", status_code=201, tags=["risk"])
async def create_catalog_risk(
    risk: RiskCreate,
    framework_key: Optional[str] = None,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return RiskRegister(db).create_catalog_entry(risk, framework_key=framework_key).to_dict()


@router.post("/risks/catalog/{risk_id}/adopt", status_code=201, tags=["risk"])
async def adopt_catalog_risk(
    risk_id: str,
    request: RiskAdopt,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    adopted = RiskRegister(db).adopt(
        risk_id, request.organization_id, actor_id=request.actor_id or "api"
    )
    return adopted.to_dict()


@router.get("/risks/{risk_id}", tags=["risk"])
async def get_risk(risk_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    risk = RiskRegister(db).get(risk_id)
    return {**risk.to_dict(), "treatment": treatment_for(risk.level)}


@router.patch("/risks/{risk_id}/assessment", tags=["risk"])
async def update_risk_assessment(
    risk_id: str,
    update: RiskAssessmentUpdate,
    actor_id: str = Query("api"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    risk = RiskRegister(db).update_assessment(
        risk_id, update.impact, update.likelihood, actor_id=actor_id
    )
    return risk.to_dict()


@router.patch("/risks/{risk_id}/status", tags=["risk"])
async def update_risk_status(
    risk_id: str,
    update: RiskStatusUpdate,
    actor_id: str = Query("api"),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return RiskRegister(db).set_status(risk_id, update.status, actor_id=actor_id).to_dict()


# =============================================================================
# Framework and Posture Endpoints
# =============================================================================


@router.post("/frameworks", status_code=201, tags=["frameworks"])
async def load_framework(
    definition: FrameworkDefinition,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    framework = FrameworkCatalog(db).load(definition)
    return {**framework.to_dict(), "controls": len(framework.controls)}


@router.get("/frameworks", tags=["frameworks"])
async def list_frameworks(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return [f.to_dict() for f in FrameworkCatalog(db).list_frameworks()]


@router.get("/frameworks/{framework_key}/controls", tags=["frameworks"])
async def list_controls(
    framework_key: str,
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in FrameworkCatalog(db).controls(framework_key)]


@router.post("/controls/{control_id}/status", tags=["posture"])
async def set_control_status(
    control_id: str,
    change: StatusChange,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Set an organization's implementation status for a control."""
    row = PostureAggregator(db).set_status(
        control_id,
        change.organization_id,
        change.status,
        notes=change.notes,
        updated_by=change.updated_by,
    )
    return row.to_dict()


@router.get("/posture", tags=["posture"])
async def get_posture(
    organization_id: str = Query(..., min_length=1),
    framework: List[str] = Query(...),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Posture for one or more frameworks (repeat ``framework``)."""
    return PostureAggregator(db).summary(framework, organization_id).model_dump(mode="json")


# =============================================================================
# Evidence Endpoints
# =============================================================================


def _evidence_store(db: Session, store: ObjectStore) -> EvidenceStore:
    return EvidenceStore(db, store, max_bytes=get_settings().max_evidence_bytes)


@router.post("/evidence", status_code=201, tags=["evidence"])
async def upload_evidence(
    file: UploadFile = File(...),
    organization_id: str = Form(...),
    framework_key: str = Form(...),
    control_ref: str = Form(...),
    uploaded_by: str = Form(...),
    overwrite: bool = Form(False),
    storage_path: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> Dict[str, Any]:
    """Upload an evidence artifact (multipart).

    On a 409 the response carries ``storage_path``; resubmit it with
    ``overwrite=true`` to replace the stored artifact.
    """
    try:
        evidence_file = EvidenceFile(
            name=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
            data=await file.read(),
        )
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e)
    evidence = _evidence_store(db, store).upload(
        control_ref,
        framework_key,
        organization_id,
        evidence_file,
        uploaded_by,
        overwrite=overwrite,
        storage_path=storage_path,
        notes=notes,
    )
    return evidence.to_dict()


@router.get("/evidence", tags=["evidence"])
async def list_evidence(
    organization_id: str = Query(..., min_length=1),
    framework_key: str = Query(..., min_length=1),
    control_ref: Optional[str] = None,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> Any:
    """Evidence for a control, or per-control counts when no control is given."""
    evidence_store = _evidence_store(db, store)
    if control_ref is None:
        return evidence_store.counts_by_control(framework_key, organization_id)
    rows = evidence_store.list_for_control(control_ref, framework_key, organization_id)
    return [e.to_dict() for e in rows]


@router.get("/evidence/{evidence_id}", tags=["evidence"])
async def get_evidence(
    evidence_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> Dict[str, Any]:
    evidence_store = _evidence_store(db, store)
    evidence = evidence_store.get(evidence_id)
    return {**evidence.to_dict(), "download_uri": evidence_store.download_uri(evidence_id)}


@router.delete("/evidence/{evidence_id}", status_code=204, tags=["evidence"])
async def delete_evidence(
    evidence_id: str,
    actor_id: str = Query("api"),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> None:
    _evidence_store(db, store).delete(evidence_id, actor_id=actor_id)


@router.post("/evidence/retry-deletions", tags=["evidence"])
async def retry_evidence_deletions(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
) -> Dict[str, Any]:
    return _evidence_store(db, store).retry_pending_deletions(actor_id="api")


# =============================================================================
# Policy Matching Endpoints
# =============================================================================


@router.post("/policies", status_code=201, tags=["policies"])
async def register_policy(
    policy: PolicyCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    created = PolicyMatcher(db).register_policy(
        policy.organization_id, policy.title, embedding=policy.embedding
    )
    return created.to_dict()


@router.put("/policies/{policy_id}/embedding", tags=["policies"])
async def set_policy_embedding(
    policy_id: str,
    update: EmbeddingUpdate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return PolicyMatcher(db).set_policy_embedding(policy_id, update.embedding).to_dict()


@router.get("/policies/{policy_id}/suggestions", tags=["policies"])
async def suggest_controls(
    policy_id: str,
    framework: str = Query(..., min_length=1),
    k: Optional[int] = Query(None),
    min_similarity: Optional[float] = Query(None),
    db: Session = Depends(get_db),
    index: VectorIndex = Depends(get_vector_index),
) -> Dict[str, Any]:
    """Suggested controls for a policy; nothing is persisted."""
    settings = get_settings()
    result = PolicyMatcher(db, index=index).suggest(
        policy_id,
        framework,
        k=settings.default_suggestion_k if k is None else k,
        min_similarity=(
            settings.default_min_similarity if min_similarity is None else min_similarity
        ),
    )
    return result.model_dump(mode="json")


@router.post("/policies/{policy_id}/mappings", status_code=201, tags=["policies"])
async def accept_mapping(
    policy_id: str,
    request: MappingAccept,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    mapping = PolicyMatcher(db).accept(
        policy_id, request.control_id, request.similarity, created_by=request.created_by
    )
    return mapping.to_dict()


@router.get("/policies/{policy_id}/mappings", tags=["policies"])
async def list_mappings(
    policy_id: str,
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return [m.to_dict() for m in PolicyMatcher(db).mappings_for_policy(policy_id)]


# =============================================================================
# Audit Endpoints
# =============================================================================


@router.get("/audit/{entity_kind}/{entity_id}", tags=["audit"])
async def get_entity_history(
    entity_kind: str,
    entity_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in AuditService(db).get_entity_history(entity_kind, entity_id, limit)]


@router.get("/audit", tags=["audit"])
async def get_organization_audit(
    organization_id: str = Query(..., min_length=1),
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    entries = AuditService(db).get_by_organization(organization_id, action=action, limit=limit)
    return [e.to_dict() for e in entries]
