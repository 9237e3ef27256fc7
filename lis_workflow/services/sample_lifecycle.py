"""
Sample lifecycle service

Linear moves ready_for_lab -> received -> inprogress -> completed, rejection
from any status, label reprints and scans (audit only). Sample completion is
also derived from the sample's exams and recomputed from scratch on every
relevant exam transition. Rejected samples are terminal and never completed.
"""

import logging
from typing import Iterable, Optional

from ..core.clock import utcnow
from ..core.exceptions import NotFoundException
from ..models.status import (
    AuditAction, AuditEntityType, SampleStatus, SAMPLE_SETTLED_STATUSES,
)
from ..store.base import DataStore
from .audit import AuditEmitter, require_actor
from .guards import checked_write, load_or_fail, require_transition
from .outcomes import OperationResult, operation

logger = logging.getLogger(__name__)

SAMPLE_NOT_FOUND = "Muestra no encontrada"


class SampleLifecycleService:
    """Status transitions for samples (specimens)"""
    
    def __init__(self, store: DataStore, audit: Optional[AuditEmitter] = None):
        self.store = store
        self.audit = audit or AuditEmitter(store)
    
    @operation("No se pudo marcar la muestra como recibida")
    async def mark_received(self, sample_id: str, user_id: str) -> OperationResult:
        return await self._advance(
            sample_id, user_id,
            target=SampleStatus.RECEIVED,
            action=AuditAction.SPECIMEN_RECEIVED,
            message="Solo muestras listas para lab pueden marcarse recibidas",
            received_at=utcnow(),
        )
    
    @operation("No se pudo marcar la muestra en proceso")
    async def mark_in_progress(self, sample_id: str, user_id: str) -> OperationResult:
        return await self._advance(
            sample_id, user_id,
            target=SampleStatus.IN_PROGRESS,
            action=AuditAction.SPECIMEN_IN_PROGRESS,
            message="Solo muestras recibidas pueden marcarse en proceso",
        )
    
    @operation("No se pudo completar la muestra")
    async def mark_completed(self, sample_id: str, user_id: str) -> OperationResult:
        return await self._advance(
            sample_id, user_id,
            target=SampleStatus.COMPLETED,
            action=AuditAction.SPECIMEN_COMPLETED,
            message="Solo muestras en proceso pueden marcarse completadas",
        )
    
    @operation("No se pudo rechazar la muestra")
    async def mark_rejected(self, sample_id: str, user_id: str, reason: Optional[str] = None) -> OperationResult:
        """Reject from any status; the only non-monotonic sample move"""
        user_id = require_actor(user_id)
        sample = await load_or_fail(self.store.samples, sample_id, SAMPLE_NOT_FOUND)
        previous = sample.status
        
        updated = checked_write(
            await self.store.samples.update(sample.id, status=SampleStatus.REJECTED),
            "No se pudo rechazar la muestra",
        )
        await self.audit.emit(
            AuditEntityType.SAMPLE, sample.id, AuditAction.SPECIMEN_REJECTED, user_id,
            {"previousStatus": previous.value, "reason": (reason or "").strip() or None},
        )
        logger.info(f"Sample {sample.id}: {previous.value} -> rejected by {user_id}")
        return OperationResult.success(updated_at=updated.version_token)
    
    @operation("No se pudo registrar la reimpresión")
    async def reprint_label(self, sample_id: str, user_id: str) -> OperationResult:
        """Record a label reprint; printing itself happens outside the system"""
        user_id = require_actor(user_id)
        sample = await load_or_fail(self.store.samples, sample_id, SAMPLE_NOT_FOUND)
        
        await self.audit.emit(
            AuditEntityType.SAMPLE, sample.id, AuditAction.LABEL_REPRINTED, user_id,
            {"barcode": sample.barcode},
        )
        return OperationResult.success(updated_at=sample.version_token)
    
    async def lookup(self, code: str):
        """Find a sample by id, then by exact barcode"""
        code = (code or "").strip()
        if not code:
            return None
        
        sample = await self.store.samples.get(code)
        if sample is not None:
            return sample
        
        matches = await self.store.samples.list(barcode=code)
        return matches[0] if matches else None
    
    @operation("No se pudo registrar el escaneo")
    async def scan_sample(self, code: str, user_id: str) -> OperationResult:
        """Resolve a scanned code and record the scan without changing status"""
        user_id = require_actor(user_id)
        sample = await self.lookup(code)
        if sample is None:
            raise NotFoundException(SAMPLE_NOT_FOUND)
        
        await self.audit.emit(
            AuditEntityType.SAMPLE, sample.id, AuditAction.SPECIMEN_SCANNED, user_id,
            {"code": code.strip(), "barcode": sample.barcode, "status": sample.status.value},
        )
        return OperationResult.success(
            updated_at=sample.version_token,
            sample_id=sample.id,
            work_order_id=sample.work_order_id,
            status=sample.status.value,
        )
    
    async def sync_completion(
        self,
        sample_id: str,
        user_id: str,
        trigger: str,
        settled_statuses: Iterable,
    ) -> bool:
        """Complete the sample once every one of its exams is settled.
        
        Recomputed from the full exam list on each call. Returns True when
        this call moved the sample to completed. Store failures raise.
        """
        settled = frozenset(settled_statuses)
        exams = await self.store.exams.list(sample_id=sample_id)
        if not exams:
            return False
        if not all(exam.status in settled for exam in exams):
            return False
        
        sample = await self.store.samples.get(sample_id)
        if sample is None or sample.status in SAMPLE_SETTLED_STATUSES:
            return False
        
        previous = sample.status
        checked_write(
            await self.store.samples.update(sample.id, status=SampleStatus.COMPLETED),
            "No se pudo actualizar el estado de la muestra",
        )
        await self.audit.emit(
            AuditEntityType.SAMPLE, sample.id, AuditAction.SPECIMEN_COMPLETED, user_id,
            {"trigger": trigger, "previousStatus": previous.value},
        )
        logger.info(f"Sample {sample.id}: {previous.value} -> completed ({trigger})")
        return True
    
    async def _advance(self, sample_id, user_id, target, action, message, **fields) -> OperationResult:
        user_id = require_actor(user_id)
        sample = await load_or_fail(self.store.samples, sample_id, SAMPLE_NOT_FOUND)
        require_transition(sample, target, message)
        previous = sample.status
        
        updated = checked_write(
            await self.store.samples.update(sample.id, status=target, **fields),
            "No se pudo actualizar la muestra",
        )
        await self.audit.emit(AuditEntityType.SAMPLE, sample.id, action, user_id)
        logger.info(f"Sample {sample.id}: {previous.value} -> {target.value} by {user_id}")
        
        return OperationResult.success(updated_at=updated.version_token)