"""
Tests for the REST action layer
"""

import pytest
from fastapi.testclient import TestClient

from lis_workflow.api.rest_api import app, get_store
from lis_workflow.models import ExamStatus, SampleStatus
from tests.conftest import set_exam_status


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestExamEndpoints:
    """Result bodies and status codes"""
    
    async def test_start_and_draft(self, client, store, exam):
        started = client.post(f"/exams/{exam.id}/start", json={"userId": "tech1"})
        assert started.status_code == 200
        t0 = started.json()["updatedAt"]
        
        draft = client.post(
            f"/exams/{exam.id}/draft",
            json={"userId": "tech1", "results": {"glucose": "95"}, "expectedVersion": t0},
        )
        
        assert draft.status_code == 200
        assert draft.json()["ok"] is True
        assert draft.json()["updatedAt"] != t0
        assert (await store.exams.get(exam.id)).results == {"glucose": 95}
    
    async def test_conflict(self, client, exam):
        t0 = client.post(f"/exams/{exam.id}/start", json={"userId": "tech1"}).json()["updatedAt"]
        client.post(f"/exams/{exam.id}/draft", json={"userId": "tech1", "results": {}, "expectedVersion": t0})
        
        response = client.post(
            f"/exams/{exam.id}/draft",
            json={"userId": "tech2", "results": {"glucose": 1}, "expectedVersion": t0},
        )
        
        assert response.status_code == 409
        assert response.json() == {"ok": False, "error": "Otro usuario modificó este examen", "conflict": True}
    
    async def test_not_found(self, client):
        response = client.post("/exams/missing/start", json={"userId": "tech1"})
        
        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Examen no encontrado"}
    
    async def test_invalid_transition(self, client, exam):
        response = client.post(f"/exams/{exam.id}/approve", json={"userId": "val1"})
        
        assert response.status_code == 400
        assert response.json()["ok"] is False
        assert "conflict" not in response.json()
    
    async def test_reject_without_reason(self, client, exam):
        response = client.post(f"/exams/{exam.id}/reject", json={"userId": "val1", "reason": ""})
        
        assert response.status_code == 422
        assert response.json() == {"ok": False, "error": "Debe indicar un motivo de rechazo"}
    
    async def test_incidence(self, client, store, exam):
        await set_exam_status(store, exam.id, ExamStatus.READY_FOR_VALIDATION)
        
        response = client.post(
            f"/exams/{exam.id}/incidences",
            json={"userId": "val1", "type": "rework", "description": "repetir"},
        )
        
        assert response.status_code == 200
        assert response.json()["movedToReview"] is True
    
    async def test_get_exam(self, client, exam):
        response = client.get(f"/exams/{exam.id}")
        
        assert response.status_code == 200
        assert response.json()["exam"]["status"] == "pending"
    
    @pytest.mark.parametrize("body", [
        {"userId": "tech1", "results": ["glucose", 95]},
        {"userId": "x" * 101, "results": {}},
    ])
    async def test_malformed_body_keeps_result_shape(self, client, store, exam, body):
        await set_exam_status(store, exam.id, ExamStatus.IN_PROGRESS)
        
        response = client.post(f"/exams/{exam.id}/draft", json=body)
        
        assert response.status_code == 422
        assert response.json() == {"ok": False, "error": "Solicitud inválida"}
        assert (await store.exams.get(exam.id)).results is None
    
    async def test_unparseable_json(self, client, exam):
        response = client.post(
            f"/exams/{exam.id}/start",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        
        assert response.status_code == 422
        assert response.json() == {"ok": False, "error": "Solicitud inválida"}


class TestSampleAndOrderEndpoints:
    """Sample moves, scans and order batches"""
    
    async def test_generate_and_ready_for_lab(self, client, store, work_order):
        generated = client.post(f"/work-orders/{work_order.id}/specimens", json={"userId": "rec1"})
        assert generated.status_code == 200
        assert generated.json()["created"] is True
        assert len(generated.json()["sampleIds"]) == 2
        
        ready = client.post(f"/work-orders/{work_order.id}/ready-for-lab", json={"userId": "rec1"})
        
        assert ready.status_code == 200
        for sample_id in generated.json()["sampleIds"]:
            assert (await store.samples.get(sample_id)).status == SampleStatus.READY_FOR_LAB
    
    async def test_scan(self, client, sample):
        response = client.post("/samples/scan", json={"userId": "rec1", "code": sample.barcode})
        
        assert response.status_code == 200
        assert response.json()["sampleId"] == sample.id
    
    async def test_missing_actor(self, client, sample):
        response = client.post(f"/samples/{sample.id}/start", json={})
        
        assert response.status_code == 422
        assert response.json()["error"] == "Debe indicar el usuario que realiza la acción"
    
    async def test_sample_reject(self, client, sample):
        response = client.post(f"/samples/{sample.id}/reject", json={"userId": "rec1", "reason": "hemolizada"})
        
        assert response.status_code == 200
    
    async def test_audit_trail(self, client, sample):
        client.post(f"/samples/{sample.id}/start", json={"userId": "tech1"})
        client.post(f"/samples/{sample.id}/reprint-label", json={"userId": "rec1"})
        
        response = client.get(f"/audit/Sample/{sample.id}")
        
        assert response.status_code == 200
        events = response.json()["events"]
        assert [e["action"] for e in events] == ["SPECIMEN_IN_PROGRESS", "LABEL_REPRINTED"]
        assert events[1]["label"] == "Etiqueta reimpresa"
    
    async def test_audit_trail_unknown_entity_type(self, client):
        response = client.get("/audit/Invoice/123")
        
        assert response.status_code == 404
