"""
Tests for the AuditLog model and service.

Verifies:
- AuditLogModel structure and to_dict()
- AuditService logging methods (create, update, status_change, delete)
- AuditService query methods (by entity, by organization)
"""

from datetime import datetime, timezone

from compliance_posture.db.audit_models import AuditLogModel
from compliance_posture.db.audit_service import AuditService


class TestAuditLogModel:
    """Tests for AuditLogModel structure."""

    def test_model_has_required_columns(self):
        columns = {c.name for c in AuditLogModel.__table__.columns}
        required = {
            "id", "ts", "actor_kind", "actor_id", "action",
            "entity_kind", "entity_id", "organization_id", "before", "after", "note",
        }
        assert required.issubset(columns)

    def test_to_dict_output(self):
        entry = AuditLogModel(
            id="test-id-123",
            ts=datetime(2026, 1, 26, 12, 0, 0, tzinfo=timezone.utc),
            actor_kind="human",
            actor_id="user-1",
            action="created",
            entity_kind="Evidence",
            entity_id="ev-123",
            organization_id="org-1",
            before=None,
            after={"file_name": "policy.pdf"},
            note="Uploaded via API",
        )

        result = entry.to_dict()

        assert result["id"] == "test-id-123"
        assert result["actor_kind"] == "human"
        assert result["action"] == "created"
        assert result["entity_kind"] == "Evidence"
        assert result["organization_id"] == "org-1"
        assert result["before"] is None
        assert result["after"] == {"file_name": "policy.pdf"}
        assert result["ts"].startswith("2026-01-26T12:00:00")


class TestAuditServiceLogging:
    def test_log_create_persists_with_caller_commit(self, db_session):
        audit = AuditService(db_session)

        entry = audit.log_create(
            entity_kind="Risk",
            entity_id="risk-1",
            after={"title": "Unpatched servers"},
            actor_kind="human",
            actor_id="alice",
            organization_id="org-1",
        )
        db_session.commit()

        found = db_session.query(AuditLogModel).filter(AuditLogModel.id == entry.id).one()
        assert found.action == "created"
        assert found.before is None
        assert found.after == {"title": "Unpatched servers"}

    def test_rollback_discards_entry(self, db_session):
        audit = AuditService(db_session)

        audit.log_create("Risk", "risk-1", {"title": "x"})
        db_session.rollback()

        assert db_session.query(AuditLogModel).count() == 0

    def test_log_update_captures_before_after(self, db_session):
        entry = AuditService(db_session).log_update(
            entity_kind="Evidence",
            entity_id="ev-1",
            before={"file_size": 10},
            after={"file_size": 20},
            actor_kind="agent",
            actor_id="sync-1",
        )

        assert entry.action == "updated"
        assert entry.before == {"file_size": 10}
        assert entry.after == {"file_size": 20}
        assert entry.actor_kind == "agent"

    def test_log_status_change(self, db_session):
        entry = AuditService(db_session).log_status_change(
            entity_kind="ControlImplementation",
            entity_id="ci-1",
            old_status="in_progress",
            new_status="implemented",
        )

        assert entry.action == "status_changed"
        assert entry.before == {"status": "in_progress"}
        assert entry.after == {"status": "implemented"}
        assert "in_progress -> implemented" in entry.note

    def test_log_delete(self, db_session):
        entry = AuditService(db_session).log_delete(
            entity_kind="Evidence",
            entity_id="ev-1",
            before={"storage_path": "org-1/evidence/x.pdf"},
        )

        assert entry.action == "deleted"
        assert entry.after is None


class TestAuditServiceQueries:
    def test_entity_history(self, db_session):
        audit = AuditService(db_session)
        audit.log_create("Risk", "risk-1", {"v": 1})
        audit.log_update("Risk", "risk-1", {"v": 1}, {"v": 2})
        audit.log_create("Risk", "risk-2", {"v": 1})
        db_session.commit()

        results = audit.get_entity_history("Risk", "risk-1")

        assert len(results) == 2
        assert {r.entity_id for r in results} == {"risk-1"}

    def test_by_organization_and_action(self, db_session):
        audit = AuditService(db_session)
        audit.log_create("Evidence", "ev-1", {}, organization_id="org-1")
        audit.log_delete("Evidence", "ev-1", {}, organization_id="org-1")
        audit.log_create("Evidence", "ev-2", {}, organization_id="org-2")
        db_session.commit()

        assert len(audit.get_by_organization("org-1")) == 2
        assert [e.action for e in audit.get_by_organization("org-1", action="deleted")] == [
            "deleted"
        ]

    def test_limit(self, db_session):
        audit = AuditService(db_session)
        for i in range(10):
            audit.log_create("Risk", "risk-1", {"num": i})
        db_session.commit()

        assert len(audit.get_entity_history("Risk", "risk-1", limit=5)) == 5


class TestAuditLogIndexes:
    def test_indexes_defined(self):
        indexes = {idx.name for idx in AuditLogModel.__table__.indexes}

        assert "ix_audit_log_entity" in indexes
        assert "ix_audit_log_org_ts" in indexes
