"""
Tests for specimen generation and order-level batch operations
"""

import pytest

from lis_workflow.models import AuditAction, AuditEntityType, ExamStatus, SampleStatus
from lis_workflow.services.outcomes import ErrorKind
from lis_workflow.services.specimen_generation import SpecimenGenerationService
from tests.conftest import FaultyDataStore


async def order_contents(store, work_order_id):
    samples = await store.samples.list(work_order_id=work_order_id)
    exams = []
    for sample in samples:
        exams.extend(await store.exams.list(sample_id=sample.id))
    return samples, exams


class TestGenerateSpecimens:
    """One sample and one exam per requested exam type"""
    
    async def test_generate(self, specimens, store, trail, work_order, glucose_type, urine_type):
        result = await specimens.generate_specimens_for_order(work_order.id, "rec1")
        
        assert result.ok
        body = result.to_dict()
        assert body["created"] is True
        assert body["barcodes"] == ["SMP-ORD-0001-01", "SMP-ORD-0001-02"]
        
        samples, exams = await order_contents(store, work_order.id)
        assert len(samples) == 2 and len(exams) == 2
        assert {s.status for s in samples} == {SampleStatus.LABELED}
        assert {e.status for e in exams} == {ExamStatus.PENDING}
        assert {s.exam_type_id for s in samples} == {glucose_type.id, urine_type.id}
        for exam in exams:
            sample = await store.samples.get(exam.sample_id)
            assert exam.exam_type_id == sample.exam_type_id
        
        events = await trail.events_for(AuditEntityType.WORK_ORDER, work_order.id)
        assert [e["action"] for e in events] == ["SPECIMENS_GENERATED"]
        assert events[0]["metadata"]["examTypeCodes"] == ["GLU", "EGO"]
        assert sorted(events[0]["metadata"]["sampleIds"]) == sorted(s.id for s in samples)
    
    async def test_accession_hash_is_stripped(self, specimens, single_exam_order):
        result = await specimens.generate_specimens_for_order(single_exam_order.id, "rec1")
        
        assert result.payload["barcodes"] == ["SMP-ORD-0002-01"]
    
    async def test_generation_is_idempotent(self, specimens, store, trail, work_order):
        first = await specimens.generate_specimens_for_order(work_order.id, "rec1")
        second = await specimens.generate_specimens_for_order(work_order.id, "rec2")
        
        assert second.ok
        assert second.payload["created"] is False
        assert sorted(second.payload["sample_ids"]) == sorted(first.payload["sample_ids"])
        assert second.payload["barcodes"] == first.payload["barcodes"]
        samples, exams = await order_contents(store, work_order.id)
        assert len(samples) == 2 and len(exams) == 2
        assert await trail.count(AuditEntityType.WORK_ORDER, work_order.id, AuditAction.SPECIMENS_GENERATED) == 1
    
    async def test_unknown_order(self, specimens):
        result = await specimens.generate_specimens_for_order("missing", "rec1")
        
        assert result.kind is ErrorKind.NOT_FOUND
        assert result.error == "Orden no encontrada"
    
    async def test_order_without_codes(self, specimens, store):
        order = (await store.work_orders.create(patient_id="P9", requested_exam_type_codes=["", None])).data
        
        result = await specimens.generate_specimens_for_order(order.id, "rec1")
        
        assert result.kind is ErrorKind.VALIDATION
        assert result.error == "La orden no tiene exámenes solicitados"
    
    async def test_unknown_codes_are_skipped(self, specimens, store, glucose_type):
        order = (await store.work_orders.create(patient_id="P9", requested_exam_type_codes=["XYZ", "GLU"])).data
        
        result = await specimens.generate_specimens_for_order(order.id, "rec1")
        
        assert result.ok
        samples, _ = await order_contents(store, order.id)
        assert [s.exam_type_id for s in samples] == [glucose_type.id]
    
    async def test_inactive_and_unknown_codes_only(self, specimens, store, glucose_type):
        await store.exam_types.update(glucose_type.id, is_active=False)
        order = (await store.work_orders.create(patient_id="P9", requested_exam_type_codes=["XYZ", "GLU"])).data
        
        result = await specimens.generate_specimens_for_order(order.id, "rec1")
        
        assert result.kind is ErrorKind.VALIDATION
        assert result.error == "No se encontraron tipos de examen válidos"
        assert await store.samples.list(work_order_id=order.id) == []


class TestGenerationRollback:
    """Partial creations are deleted when a write fails"""
    
    async def test_exam_failure_removes_everything_created(self, store, trail, work_order):
        faulty = FaultyDataStore(store)
        faulty.exams.fail("create", after=1)
        service = SpecimenGenerationService(faulty)
        
        result = await service.generate_specimens_for_order(work_order.id, "rec1")
        
        assert not result.ok
        assert result.kind is ErrorKind.PERSISTENCE
        assert result.error == "database is locked"
        samples, exams = await order_contents(store, work_order.id)
        assert samples == [] and exams == []
        assert await store.exams.list() == []
        assert await trail.events_for(AuditEntityType.WORK_ORDER, work_order.id) == []
    
    async def test_sample_failure(self, store, work_order):
        faulty = FaultyDataStore(store)
        faulty.samples.fail("create", after=1)
        service = SpecimenGenerationService(faulty)
        
        result = await service.generate_specimens_for_order(work_order.id, "rec1")
        
        assert result.kind is ErrorKind.PERSISTENCE
        assert await store.samples.list() == []
        assert await store.exams.list() == []
    
    async def test_failed_compensation_leaves_an_orphan(self, store, specimens, work_order):
        faulty = FaultyDataStore(store)
        faulty.exams.fail("create")
        faulty.samples.fail("delete")
        service = SpecimenGenerationService(faulty)
        
        result = await service.generate_specimens_for_order(work_order.id, "rec1")
        
        assert not result.ok
        orphans = await specimens.find_orphan_samples()
        assert [o.work_order_id for o in orphans] == [work_order.id]
    
    async def test_no_orphans_after_clean_generation(self, specimens, work_order):
        await specimens.generate_specimens_for_order(work_order.id, "rec1")
        
        assert await specimens.find_orphan_samples() == []


class TestOrderBatchOperations:
    """Label printing and hand-off to the lab"""
    
    async def test_labels_printed(self, specimens, trail, work_order):
        await specimens.generate_specimens_for_order(work_order.id, "rec1")
        
        result = await specimens.mark_labels_printed_for_order(work_order.id, "rec1")
        
        assert result.ok
        events = await trail.events_for(AuditEntityType.WORK_ORDER, work_order.id)
        assert events[-1]["action"] == "LABEL_PRINTED"
        assert sorted(events[-1]["metadata"]["barcodes"]) == ["SMP-ORD-0001-01", "SMP-ORD-0001-02"]
    
    async def test_ready_for_lab_advances_labeled_samples(self, specimens, store, trail, work_order):
        generated = await specimens.generate_specimens_for_order(work_order.id, "rec1")
        first_id = generated.payload["sample_ids"][0]
        await store.samples.update(first_id, status=SampleStatus.REJECTED)
        
        result = await specimens.mark_order_ready_for_lab(work_order.id, "rec1")
        
        assert result.ok
        assert sorted(result.payload["sample_ids"]) == sorted(generated.payload["sample_ids"][1:])
        assert (await store.samples.get(first_id)).status == SampleStatus.REJECTED
        for sample_id in result.payload["sample_ids"]:
            assert (await store.samples.get(sample_id)).status == SampleStatus.READY_FOR_LAB
        events = await trail.events_for(AuditEntityType.WORK_ORDER, work_order.id)
        assert events[-1]["action"] == "ORDER_READY_FOR_LAB"
    
    async def test_ready_for_lab_twice_advances_nothing(self, specimens, work_order):
        await specimens.generate_specimens_for_order(work_order.id, "rec1")
        await specimens.mark_order_ready_for_lab(work_order.id, "rec1")
        
        result = await specimens.mark_order_ready_for_lab(work_order.id, "rec1")
        
        assert result.ok
        assert result.payload["sample_ids"] == []
    
    @pytest.mark.parametrize("operation", ["mark_labels_printed_for_order", "mark_order_ready_for_lab"])
    async def test_order_without_samples(self, specimens, work_order, operation):
        result = await getattr(specimens, operation)(work_order.id, "rec1")
        
        assert result.kind is ErrorKind.VALIDATION
        assert result.error == "No hay muestras para esta orden"
