"""
Specimen generation service

Creates one labeled sample and one pending exam per requested exam type of
a work order. The creation sequence is not transactional: on a failed write
the samples and exams created so far in the call are deleted best-effort.
"""

import logging
from typing import List, Optional, Tuple

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ValidationException
from ..models.status import AuditAction, AuditEntityType, ExamStatus, SampleStatus
from ..store.base import DataStore
from .audit import AuditEmitter, require_actor
from .guards import checked_write, load_or_fail
from .outcomes import ErrorKind, OperationResult, operation

logger = logging.getLogger(__name__)

NO_SAMPLES_FOR_ORDER = "No hay muestras para esta orden"


class SpecimenGenerationService:
    """Sample/exam creation and order-level batch operations"""
    
    def __init__(
        self,
        store: DataStore,
        audit: Optional[AuditEmitter] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.audit = audit or AuditEmitter(store)
        self.settings = settings or default_settings
    
    @operation("No se pudieron generar las muestras")
    async def generate_specimens_for_order(self, work_order_id: str, user_id: str) -> OperationResult:
        """Idempotent: an order that already has samples gets them back unchanged"""
        user_id = require_actor(user_id)
        work_order = await load_or_fail(self.store.work_orders, work_order_id, "Orden no encontrada")
        
        requested_codes = work_order.requested_codes
        if not requested_codes:
            raise ValidationException("La orden no tiene exámenes solicitados")
        
        existing = await self.store.samples.list(work_order_id=work_order.id)
        if existing:
            existing.sort(key=lambda sample: sample.barcode or "")
            logger.info(f"Work order {work_order.id} already has {len(existing)} samples")
            return OperationResult.success(
                sample_ids=[sample.id for sample in existing],
                barcodes=[sample.barcode for sample in existing if sample.barcode],
                created=False,
            )
        
        to_create = await self._resolve_exam_types(requested_codes)
        if not to_create:
            raise ValidationException("No se encontraron tipos de examen válidos")
        
        prefix = self._barcode_prefix(work_order)
        created_sample_ids: List[str] = []
        created_exam_ids: List[str] = []
        barcodes: List[str] = []
        
        for sequence, (code, exam_type_id) in enumerate(to_create, start=1):
            barcode = f"{self.settings.workflow_barcode_prefix}-{prefix}-{sequence:02d}"
            
            sample_result = await self.store.samples.create(
                work_order_id=work_order.id,
                exam_type_id=exam_type_id,
                barcode=barcode,
                status=SampleStatus.LABELED,
            )
            if not sample_result.succeeded:
                await self._compensate(created_exam_ids, created_sample_ids)
                return OperationResult.failure(
                    sample_result.error_message("Error al crear muestra"), ErrorKind.PERSISTENCE
                )
            created_sample_ids.append(sample_result.data.id)
            barcodes.append(barcode)
            
            exam_result = await self.store.exams.create(
                sample_id=sample_result.data.id,
                exam_type_id=exam_type_id,
                status=ExamStatus.PENDING,
            )
            if not exam_result.succeeded:
                await self._compensate(created_exam_ids, created_sample_ids)
                return OperationResult.failure(
                    exam_result.error_message("Error al crear examen"), ErrorKind.PERSISTENCE
                )
            created_exam_ids.append(exam_result.data.id)
        
        await self.audit.emit(
            AuditEntityType.WORK_ORDER, work_order.id, AuditAction.SPECIMENS_GENERATED, user_id,
            {
                "sampleIds": created_sample_ids,
                "examIds": created_exam_ids,
                "barcodes": barcodes,
                "examTypeCodes": [code for code, _ in to_create],
            },
        )
        logger.info(f"Generated {len(created_sample_ids)} samples for work order {work_order.id}")
        
        return OperationResult.success(sample_ids=created_sample_ids, barcodes=barcodes, created=True)
    
    @operation("No se pudo registrar la impresión de etiquetas")
    async def mark_labels_printed_for_order(self, work_order_id: str, user_id: str) -> OperationResult:
        user_id = require_actor(user_id)
        samples = await self._samples_for_order(work_order_id)
        barcodes = [sample.barcode for sample in samples if sample.barcode]
        
        await self.audit.emit(
            AuditEntityType.WORK_ORDER, work_order_id, AuditAction.LABEL_PRINTED, user_id,
            {"barcodes": barcodes},
        )
        return OperationResult.success(barcodes=barcodes)
    
    @operation("No se pudo marcar la orden lista para laboratorio")
    async def mark_order_ready_for_lab(self, work_order_id: str, user_id: str) -> OperationResult:
        """Advance every labeled sample to ready_for_lab; other samples are left alone"""
        user_id = require_actor(user_id)
        samples = await self._samples_for_order(work_order_id)
        
        advanced: List[str] = []
        for sample in samples:
            if sample.status != SampleStatus.LABELED:
                continue
            checked_write(
                await self.store.samples.update(sample.id, status=SampleStatus.READY_FOR_LAB),
                "No se pudo actualizar la muestra",
            )
            advanced.append(sample.id)
        
        await self.audit.emit(
            AuditEntityType.WORK_ORDER, work_order_id, AuditAction.ORDER_READY_FOR_LAB, user_id,
            {"sampleIds": [sample.id for sample in samples], "advancedSampleIds": advanced},
        )
        logger.info(f"Work order {work_order_id}: {len(advanced)} of {len(samples)} samples ready for lab")
        return OperationResult.success(sample_ids=advanced)
    
    async def find_orphan_samples(self) -> list:
        """Samples left without an exam, e.g. by an interrupted generation"""
        samples = await self.store.samples.list()
        exams = await self.store.exams.list()
        with_exam = {exam.sample_id for exam in exams}
        return [sample for sample in samples if sample.id not in with_exam]
    
    async def _samples_for_order(self, work_order_id: str) -> list:
        samples = await self.store.samples.list(work_order_id=work_order_id) if work_order_id else []
        if not samples:
            raise ValidationException(NO_SAMPLES_FOR_ORDER)
        return samples
    
    async def _resolve_exam_types(self, codes: List[str]) -> List[Tuple[str, str]]:
        catalog = await self.store.exam_types.list()
        code_to_id = {
            exam_type.code: exam_type.id
            for exam_type in catalog
            if exam_type.id is not None and exam_type.is_active is not False
        }
        
        resolved = []
        for code in codes:
            exam_type_id = code_to_id.get(code)
            if exam_type_id is None:
                logger.warning(f"Requested exam type '{code}' is not in the active catalog, skipping")
                continue
            resolved.append((code, exam_type_id))
        return resolved
    
    def _barcode_prefix(self, work_order) -> str:
        prefix = work_order.accession_number or work_order.id[:8]
        return prefix.lstrip("#")
    
    async def _compensate(self, exam_ids: List[str], sample_ids: List[str]):
        """Best-effort deletes; a failed delete is logged and skipped"""
        for exam_id in exam_ids:
            result = await self.store.exams.delete(exam_id)
            if not result.succeeded:
                logger.warning(f"Rollback could not delete exam {exam_id}: {result.error_message('unknown error')}")
        for sample_id in sample_ids:
            result = await self.store.samples.delete(sample_id)
            if not result.succeeded:
                logger.warning(f"Rollback could not delete sample {sample_id}: {result.error_message('unknown error')}")
        logger.info(f"Rolled back {len(exam_ids)} exams and {len(sample_ids)} samples")
