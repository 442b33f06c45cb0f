"""
Tests for framework catalog loading.
"""

import pytest

from compliance_posture.db.models import ControlModel, FrameworkModel
from compliance_posture.engine.catalog import FrameworkCatalog
from compliance_posture.engine.posture import PostureAggregator
from compliance_posture.errors import NotFoundError, ValidationError
from compliance_posture.schemas import FrameworkDefinition

NIST = {
    "key": "NIST",
    "name": "NIST SP 800-53",
    "controls": [
        {"control_ref": "AC-1", "control_name": "Policy and Procedures"},
        {"control_ref": "AC-2", "control_name": "Account Management", "chapter": "AC"},
    ],
}


class TestLoad:
    def test_load_from_mapping(self, db_session):
        framework = FrameworkCatalog(db_session).load(NIST)

        assert framework.key == "NIST"
        assert [c.control_ref for c in framework.controls] == ["AC-1", "AC-2"]
        assert framework.controls[1].chapter == "AC"

    def test_load_from_definition(self, db_session):
        framework = FrameworkCatalog(db_session).load(FrameworkDefinition.model_validate(NIST))

        assert len(framework.controls) == 2

    def test_reload_updates_in_place(self, db_session):
        catalog = FrameworkCatalog(db_session)
        first = catalog.load(NIST)
        ids = {c.control_ref: c.id for c in first.controls}
        PostureAggregator(db_session).set_status(ids["AC-1"], "org-1", "implemented")

        renamed = {
            **NIST,
            "name": "NIST SP 800-53 Rev. 5",
            "controls": NIST["controls"] + [{"control_ref": "AC-3", "control_name": "Access"}],
        }
        second = catalog.load(renamed)

        assert second.id == first.id
        assert second.name == "NIST SP 800-53 Rev. 5"
        assert db_session.query(FrameworkModel).count() == 1
        assert db_session.query(ControlModel).count() == 3
        assert {c.control_ref: c.id for c in second.controls}["AC-1"] == ids["AC-1"]

        posture = PostureAggregator(db_session).aggregate(["NIST"], "org-1")["NIST"]
        assert posture.implemented == 33

    def test_duplicate_refs_rejected(self, db_session):
        definition = {**NIST, "controls": NIST["controls"] + [NIST["controls"][0]]}

        with pytest.raises(ValidationError) as exc_info:
            FrameworkCatalog(db_session).load(definition)

        assert exc_info.value.code == "INVALID_INPUT"
        assert db_session.query(FrameworkModel).count() == 0

    def test_missing_name_rejected(self, db_session):
        with pytest.raises(ValidationError):
            FrameworkCatalog(db_session).load({"key": "NIST", "controls": []})

    def test_invalid_embedding_rejected(self, db_session):
        definition = {
            "key": "NIST",
            "name": "NIST",
            "controls": [
                {"control_ref": "AC-1", "control_name": "Policy", "embedding": [float("nan")]}
            ],
        }

        with pytest.raises(ValidationError) as exc_info:
            FrameworkCatalog(db_session).load(definition)
        assert exc_info.value.code == "INVALID_EMBEDDING"


class TestReads:
    def test_get_unknown(self, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            FrameworkCatalog(db_session).get("SOC9")
        assert exc_info.value.code == "FRAMEWORK_NOT_FOUND"

    def test_list_frameworks_sorted(self, db_session, framework_factory):
        framework_factory(key="SOC2", refs=["CC1.1"])
        framework_factory(key="ISO27001", refs=["A.5.1"])

        keys = [f.key for f in FrameworkCatalog(db_session).list_frameworks()]

        assert keys == ["ISO27001", "SOC2"]

    def test_find_control(self, db_session, iso_framework):
        catalog = FrameworkCatalog(db_session)

        assert catalog.find_control("ISO27001", "A.5.3").control_name == "Control A.5.3"
        assert catalog.find_control("ISO27001", "Z.9") is None
        assert catalog.find_control("NIST", "A.5.3") is None

    def test_set_control_embedding(self, db_session, iso_framework):
        catalog = FrameworkCatalog(db_session)
        control = iso_framework.controls[0]

        updated = catalog.set_control_embedding(control.id, [0.5, 0.5])

        assert updated.embedding == [0.5, 0.5]
        with pytest.raises(NotFoundError):
            catalog.set_control_embedding("missing", [1.0])
