"""
Tests for the HTTP API.

The app's session and object store dependencies are overridden with the
per-test in-memory database and temporary store from conftest.py.
"""

import pytest
from fastapi.testclient import TestClient

from compliance_posture.api import app
from compliance_posture.db.base import get_db
from compliance_posture.routes import get_object_store

WORST_CASE = {
    "hasSecurityPolicy": "no",
    "securityAudits": "absent",
    "hasBCP": "no",
    "hasQualityManagement": "no",
    "kpis": "absent",
    "hasCodeOfConduct": "no",
    "willingToSignAgreement": "no",
    "profitableLastTwoYears": "no",
    "provideFinancialStatements": "no",
}


@pytest.fixture
def client(db_session, object_store):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_store] = lambda: object_store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _control_id(client, framework_key, ref):
    controls = client.get(f"/frameworks/{framework_key}/controls").json()
    return next(c["id"] for c in controls if c["control_ref"] == ref)


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert isinstance(response.json()["version"], str)


class TestRiskEndpoints:
    def test_score_questionnaire(self, client):
        response = client.post("/risk/score", json=WORST_CASE)

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 100
        assert data["tier"] == "Critical"

    def test_invalid_answer_is_422_with_code(self, client):
        response = client.post("/risk/score", json={"hasBCP": "maybe"})

        assert response.status_code == 422
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["code"] == "INVALID_INPUT"
        assert "message" in data

    def test_register_risk_lifecycle(self, client):
        response = client.post(
            "/risks",
            params={"organization_id": "org-1"},
            json={"title": "Ransomware", "category": "Security", "impact": 5, "likelihood": 4},
        )
        assert response.status_code == 201
        risk = response.json()
        assert risk["score"] == 20
        assert risk["level"] == "High"
        assert risk["status"] == "Open"

        fetched = client.get(f"/risks/{risk['id']}").json()
        assert fetched["treatment"]

        response = client.patch(f"/risks/{risk['id']}/status", json={"status": "Mitigated"})
        assert response.status_code == 200
        assert response.json()["status"] == "Mitigated"

        listed = client.get("/risks", params={"organization_id": "org-1"}).json()
        assert [r["id"] for r in listed] == [risk["id"]]

    def test_unknown_risk_is_404(self, client):
        response = client.get("/risks/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "RISK_NOT_FOUND"


class TestPostureEndpoints:
    def test_status_then_posture(self, client, iso_framework):
        for ref in ("A.5.1", "A.5.2", "A.5.3", "A.5.4"):
            response = client.post(
                f"/controls/{_control_id(client, 'ISO27001', ref)}/status",
                json={"organization_id": "org-1", "status": "implemented"},
            )
            assert response.status_code == 200
        for ref in ("A.5.5", "A.5.6"):
            client.post(
                f"/controls/{_control_id(client, 'ISO27001', ref)}/status",
                json={"organization_id": "org-1", "status": "in_progress"},
            )

        response = client.get(
            "/posture", params={"organization_id": "org-1", "framework": "ISO27001"}
        )

        assert response.status_code == 200
        data = response.json()
        iso = data["frameworks"]["ISO27001"]
        assert (iso["implemented"], iso["in_progress"], iso["not_started"], iso["exempt"]) == (
            40,
            20,
            40,
            0,
        )
        assert data["compliance_percentage"] == 40

    def test_unknown_framework_is_404(self, client):
        response = client.get("/posture", params={"organization_id": "org-1", "framework": "SOC9"})

        assert response.status_code == 404
        assert response.json()["code"] == "FRAMEWORK_NOT_FOUND"

    def test_load_framework(self, client):
        response = client.post(
            "/frameworks",
            json={
                "key": "NIST",
                "name": "NIST SP 800-53",
                "controls": [{"control_ref": "AC-1", "control_name": "Policy"}],
            },
        )

        assert response.status_code == 201
        assert response.json()["controls"] == 1
        assert [f["key"] for f in client.get("/frameworks").json()] == ["NIST"]


class TestEvidenceEndpoints:
    FORM = {
        "organization_id": "org-1",
        "framework_key": "ISO27001",
        "control_ref": "A.5.1",
        "uploaded_by": "alice",
    }

    def _upload(self, client, content, **extra):
        return client.post(
            "/evidence",
            data={**self.FORM, **extra},
            files={"file": ("policy.pdf", content, "application/pdf")},
        )

    def test_upload_conflict_then_overwrite(self, client, iso_framework, object_store):
        first = self._upload(client, b"v1")
        assert first.status_code == 201
        path = first.json()["storage_path"]

        conflict = self._upload(client, b"v2", storage_path=path)
        assert conflict.status_code == 409
        body = conflict.json()
        assert body["code"] == "EVIDENCE_PATH_EXISTS"
        assert body["storage_path"] == path

        replaced = self._upload(client, b"v2", storage_path=path, overwrite="true")
        assert replaced.status_code == 201
        assert replaced.json()["id"] == first.json()["id"]
        assert object_store.read(path) == b"v2"

    def test_list_get_and_delete(self, client, iso_framework):
        evidence_id = self._upload(client, b"v1").json()["id"]

        listed = client.get(
            "/evidence",
            params={"organization_id": "org-1", "framework_key": "ISO27001", "control_ref": "A.5.1"},
        ).json()
        assert [e["id"] for e in listed] == [evidence_id]

        counts = client.get(
            "/evidence", params={"organization_id": "org-1", "framework_key": "ISO27001"}
        ).json()
        assert counts == {"A.5.1": 1}

        detail = client.get(f"/evidence/{evidence_id}").json()
        assert detail["download_uri"].startswith("file://")

        assert client.delete(f"/evidence/{evidence_id}").status_code == 204
        assert client.get(f"/evidence/{evidence_id}").status_code == 404

    def test_unknown_control_is_404(self, client, iso_framework):
        response = self._upload(client, b"v1", control_ref="Z.9")

        assert response.status_code == 404
        assert response.json()["code"] == "CONTROL_NOT_FOUND"

    def test_upload_and_delete_appear_in_org_audit(self, client, iso_framework):
        evidence_id = self._upload(client, b"v1").json()["id"]
        client.delete(f"/evidence/{evidence_id}", params={"actor_id": "alice"})

        entries = client.get("/audit", params={"organization_id": "org-1"}).json()
        deleted = client.get(
            "/audit", params={"organization_id": "org-1", "action": "deleted"}
        ).json()

        assert {e["action"] for e in entries} == {"created", "deleted"}
        assert [e["entity_id"] for e in deleted] == [evidence_id]
        assert deleted[0]["actor_id"] == "alice"


class TestPolicyEndpoints:
    def test_suggestions_without_embedding(self, client, iso_framework):
        policy = client.post(
            "/policies", json={"organization_id": "org-1", "title": "Acceptable Use"}
        ).json()

        response = client.get(
            f"/policies/{policy['id']}/suggestions", params={"framework": "ISO27001"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "no_embedding"
        assert response.json()["suggestions"] == []

    def test_suggestions_ranked(self, client, framework_factory):
        framework_factory(
            key="NIST",
            refs=["AC-1", "AC-2"],
            embeddings={"AC-1": [1.0, 0.0], "AC-2": [0.0, 1.0]},
        )
        policy = client.post(
            "/policies",
            json={"organization_id": "org-1", "title": "Access", "embedding": [0.9, 0.1]},
        ).json()

        response = client.get(
            f"/policies/{policy['id']}/suggestions",
            params={"framework": "NIST", "k": 1, "min_similarity": 0.5},
        )

        data = response.json()
        assert data["status"] == "ok"
        assert [s["control_ref"] for s in data["suggestions"]] == ["AC-1"]

    def test_out_of_range_k_is_422(self, client, iso_framework):
        policy = client.post(
            "/policies", json={"organization_id": "org-1", "title": "Access"}
        ).json()

        response = client.get(
            f"/policies/{policy['id']}/suggestions", params={"framework": "ISO27001", "k": 0}
        )

        assert response.status_code == 422
        assert response.json()["code"] == "OUT_OF_RANGE"

    def test_accept_twice_is_409(self, client, iso_framework):
        policy = client.post(
            "/policies", json={"organization_id": "org-1", "title": "Access"}
        ).json()
        body = {"control_id": _control_id(client, "ISO27001", "A.5.1"), "similarity": 0.82}

        first = client.post(f"/policies/{policy['id']}/mappings", json=body)
        second = client.post(f"/policies/{policy['id']}/mappings", json=body)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "MAPPING_EXISTS"
        assert len(client.get(f"/policies/{policy['id']}/mappings").json()) == 1

        history = client.get(f"/audit/PolicyControlMapping/{first.json()['id']}").json()
        assert [e["action"] for e in history] == ["created"]
