"""
Exam lifecycle service

pending -> inprogress -> completed -> ready_for_validation -> approved | rejected,
with ready_for_validation -> review when a rework incidence is raised.

Each operation re-reads the exam, checks its status (and version token
where the caller supplies one), writes, emits one audit event, and only
then triggers the sample completion sync.
"""

import logging
from typing import Any, Mapping, Optional

from ..core.clock import utcnow
from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ValidationException
from ..models.status import (
    AuditAction, AuditEntityType, ExamStatus,
    VALIDATION_QUEUE_STATUSES, VALIDATION_TERMINAL_STATUSES,
)
from ..store.base import DataStore
from .audit import AuditEmitter, require_actor
from .concurrency import ensure_current_version
from .field_schema import parse_field_schema, validate_results
from .guards import checked_write, load_or_fail, require_status, require_transition
from .outcomes import OperationResult, operation
from .sample_lifecycle import SampleLifecycleService

logger = logging.getLogger(__name__)

EXAM_NOT_FOUND = "Examen no encontrado"


class ExamLifecycleService:
    """Result capture and validation transitions for exams"""
    
    def __init__(
        self,
        store: DataStore,
        audit: Optional[AuditEmitter] = None,
        samples: Optional[SampleLifecycleService] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.audit = audit or AuditEmitter(store)
        self.samples = samples or SampleLifecycleService(store, self.audit)
        self.settings = settings or default_settings
    
    @operation("No se pudo leer el examen")
    async def get_exam(self, exam_id: str) -> OperationResult:
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        return OperationResult.success(updated_at=exam.version_token, exam=exam.to_dict())
    
    @operation("No se pudo iniciar el examen")
    async def mark_started(self, exam_id: str, user_id: str) -> OperationResult:
        """Start an exam; repeated calls after the first are a successful no-op"""
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        if exam.status != ExamStatus.PENDING:
            return OperationResult.success(updated_at=exam.version_token)
        
        updated = checked_write(
            await self.store.exams.update(
                exam.id,
                status=ExamStatus.IN_PROGRESS,
                started_at=utcnow(),
                performed_by=user_id,
            ),
            "No se pudo iniciar el examen",
        )
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, AuditAction.EXAM_STARTED, user_id,
            {"sampleId": exam.sample_id},
        )
        logger.info(f"Exam {exam.id}: pending -> inprogress by {user_id}")
        return OperationResult.success(updated_at=updated.version_token)
    
    @operation("No se pudo guardar el borrador")
    async def save_draft(
        self,
        exam_id: str,
        results: Mapping[str, Any],
        user_id: str,
        expected_version: Optional[str] = None,
    ) -> OperationResult:
        """Store results without changing status"""
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        require_status(exam, ExamStatus.IN_PROGRESS, "Solo exámenes en proceso pueden guardar borrador")
        ensure_current_version(exam, expected_version, self.settings.workflow_require_version_token)
        cleaned = await self._validated_results(exam, results)
        
        updated = checked_write(
            await self.store.exams.update(exam.id, results=cleaned),
            "No se pudo guardar el borrador",
        )
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, AuditAction.EXAM_RESULTS_SAVED, user_id,
            {"sampleId": exam.sample_id, "draft": True},
        )
        logger.info(f"Exam {exam.id}: draft saved by {user_id} ({len(cleaned)} fields)")
        return OperationResult.success(updated_at=updated.version_token)
    
    @operation("No se pudo finalizar el examen")
    async def finalize(
        self,
        exam_id: str,
        results: Mapping[str, Any],
        user_id: str,
        expected_version: Optional[str] = None,
    ) -> OperationResult:
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        require_transition(exam, ExamStatus.COMPLETED, "Solo exámenes en proceso pueden finalizarse")
        ensure_current_version(exam, expected_version, self.settings.workflow_require_version_token)
        cleaned = await self._validated_results(exam, results)
        
        updated = checked_write(
            await self.store.exams.update(
                exam.id,
                results=cleaned,
                status=ExamStatus.COMPLETED,
                resulted_at=utcnow(),
                performed_by=user_id,
            ),
            "No se pudo finalizar el examen",
        )
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, AuditAction.EXAM_RESULTS_SAVED, user_id,
            {"sampleId": exam.sample_id, "finalized": True},
        )
        logger.info(f"Exam {exam.id}: inprogress -> completed by {user_id}")
        return OperationResult.success(updated_at=updated.version_token)
    
    @operation("No se pudo enviar el examen a validación")
    async def send_to_validation(self, exam_id: str, user_id: str) -> OperationResult:
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        require_transition(
            exam, ExamStatus.READY_FOR_VALIDATION,
            "Solo exámenes finalizados pueden enviarse a validación",
        )
        
        updated = checked_write(
            await self.store.exams.update(exam.id, status=ExamStatus.READY_FOR_VALIDATION),
            "No se pudo enviar el examen a validación",
        )
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, AuditAction.EXAM_SENT_TO_VALIDATION, user_id,
            {"sampleId": exam.sample_id},
        )
        logger.info(f"Exam {exam.id}: completed -> ready_for_validation by {user_id}")
        
        if self.settings.workflow_complete_sample_on_validation_queue:
            settled = VALIDATION_QUEUE_STATUSES
        else:
            settled = VALIDATION_TERMINAL_STATUSES
        await self.samples.sync_completion(exam.sample_id, user_id, "exam_sent_to_validation", settled)
        
        return OperationResult.success(updated_at=updated.version_token)
    
    @operation("No se pudo aprobar el examen")
    async def approve(
        self,
        exam_id: str,
        user_id: str,
        comments: Optional[str] = None,
        expected_version: Optional[str] = None,
    ) -> OperationResult:
        return await self._validate_exam(
            exam_id, user_id,
            target=ExamStatus.APPROVED,
            action=AuditAction.EXAM_APPROVED,
            message="Solo exámenes listos para validación pueden aprobarse",
            expected_version=expected_version,
            metadata={"comments": _clean(comments)},
            trigger="exam_approved",
        )
    
    @operation("No se pudo rechazar el examen")
    async def reject(
        self,
        exam_id: str,
        user_id: str,
        reason: str,
        comments: Optional[str] = None,
        expected_version: Optional[str] = None,
    ) -> OperationResult:
        reason = _clean(reason)
        if not reason:
            raise ValidationException("Debe indicar un motivo de rechazo")
        
        return await self._validate_exam(
            exam_id, user_id,
            target=ExamStatus.REJECTED,
            action=AuditAction.EXAM_REJECTED,
            message="Solo exámenes listos para validación pueden rechazarse",
            expected_version=expected_version,
            metadata={"reason": reason, "comments": _clean(comments)},
            trigger="exam_rejected",
        )
    
    @operation("No se pudo registrar la incidencia")
    async def create_incidence(
        self,
        exam_id: str,
        user_id: str,
        incidence_type: str,
        description: str,
    ) -> OperationResult:
        """Record an incidence; rework-type incidences send a queued exam back to review"""
        incidence_type = _clean(incidence_type)
        description = _clean(description)
        if not incidence_type:
            raise ValidationException("Debe indicar el tipo de incidencia")
        if not description:
            raise ValidationException("Debe indicar la descripción de la incidencia")
        
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        version = exam.version_token
        moved_to_review = False
        
        if self.is_rework_incidence(incidence_type) and exam.status == ExamStatus.READY_FOR_VALIDATION:
            updated = checked_write(
                await self.store.exams.update(exam.id, status=ExamStatus.REVIEW),
                "No se pudo mover el examen a revisión",
            )
            version = updated.version_token
            moved_to_review = True
            logger.info(f"Exam {exam.id}: ready_for_validation -> review ({incidence_type})")
        
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, AuditAction.INCIDENCE_CREATED, user_id,
            {
                "sampleId": exam.sample_id,
                "type": incidence_type,
                "description": description,
                "movedToReview": moved_to_review,
            },
        )
        return OperationResult.success(updated_at=version, moved_to_review=moved_to_review)
    
    def is_rework_incidence(self, incidence_type: str) -> bool:
        normalized = (incidence_type or "").strip().lower()
        return normalized in self.settings.workflow_rework_incidence_types
    
    async def _validate_exam(self, exam_id, user_id, target, action, message, expected_version, metadata, trigger):
        user_id = require_actor(user_id)
        exam = await load_or_fail(self.store.exams, exam_id, EXAM_NOT_FOUND)
        require_transition(exam, target, message)
        ensure_current_version(exam, expected_version, self.settings.workflow_require_version_token)
        
        updated = checked_write(
            await self.store.exams.update(
                exam.id,
                status=target,
                validated_by=user_id,
                validated_at=utcnow(),
            ),
            "No se pudo actualizar el examen",
        )
        await self.audit.emit(
            AuditEntityType.EXAM, exam.id, action, user_id,
            {"sampleId": exam.sample_id, **metadata},
        )
        logger.info(f"Exam {exam.id}: ready_for_validation -> {target.value} by {user_id}")
        
        await self.samples.sync_completion(exam.sample_id, user_id, trigger, VALIDATION_TERMINAL_STATUSES)
        return OperationResult.success(updated_at=updated.version_token)
    
    async def _validated_results(self, exam, results) -> dict:
        exam_type = await self.store.exam_types.get(exam.exam_type_id)
        schema = parse_field_schema(exam_type.field_schema) if exam_type else None
        return validate_results(results, schema)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None
