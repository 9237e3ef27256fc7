"""
Status taxonomy for work orders, samples and exams

Canonical value sets, transition tables and audit action identifiers.
No persistence or service logic lives here.
"""

from enum import Enum as PyEnum
from typing import Dict, FrozenSet, Optional, Set


class WorkOrderStatus(PyEnum):
    """Work order status enumeration"""
    PENDING = "pending"
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"


class WorkOrderPriority(PyEnum):
    """Work order priority enumeration"""
    ROUTINE = "routine"
    URGENT = "urgent"
    STAT = "stat"


class SampleStatus(PyEnum):
    """Sample (specimen) status enumeration"""
    PENDING = "pending"
    LABELED = "labeled"
    READY_FOR_LAB = "ready_for_lab"
    RECEIVED = "received"
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ExamStatus(PyEnum):
    """Exam status enumeration"""
    PENDING = "pending"
    IN_PROGRESS = "inprogress"
    COMPLETED = "completed"
    REVIEW = "review"
    READY_FOR_VALIDATION = "ready_for_validation"
    APPROVED = "approved"
    REJECTED = "rejected"


class SampleType(PyEnum):
    """Catalog sample type enumeration"""
    URINE = "urine"
    STOOL = "stool"
    WHOLE_BLOOD_EDTA = "wholebloodedta"
    SERUM = "serum"
    OTHER = "other"


class AuditEntityType(str, PyEnum):
    """AuditEvent.entity_type values"""
    WORK_ORDER = "WorkOrder"
    SAMPLE = "Sample"
    EXAM = "Exam"
    PATIENT = "Patient"


class AuditAction(str, PyEnum):
    """Canonical AuditEvent.action identifiers"""
    # Order lifecycle
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    
    # Specimen lifecycle
    SPECIMENS_GENERATED = "SPECIMENS_GENERATED"
    LABEL_PRINTED = "LABEL_PRINTED"
    LABEL_REPRINTED = "LABEL_REPRINTED"
    ORDER_READY_FOR_LAB = "ORDER_READY_FOR_LAB"
    SPECIMEN_SCANNED = "SPECIMEN_SCANNED"
    SPECIMEN_RECEIVED = "SPECIMEN_RECEIVED"
    SPECIMEN_IN_PROGRESS = "SPECIMEN_IN_PROGRESS"
    SPECIMEN_COMPLETED = "SPECIMEN_COMPLETED"
    SPECIMEN_REJECTED = "SPECIMEN_REJECTED"
    
    # Exam lifecycle
    EXAM_STARTED = "EXAM_STARTED"
    EXAM_RESULTS_SAVED = "EXAM_RESULTS_SAVED"
    EXAM_SENT_TO_VALIDATION = "EXAM_SENT_TO_VALIDATION"
    
    # Validation
    EXAM_APPROVED = "EXAM_APPROVED"
    EXAM_REJECTED = "EXAM_REJECTED"
    INCIDENCE_CREATED = "INCIDENCE_CREATED"


# Forward transitions driven by the lifecycle services. Sample rejection and
# derived sample completion are handled outside these tables.
EXAM_TRANSITIONS: Dict[ExamStatus, FrozenSet[ExamStatus]] = {
    ExamStatus.PENDING: frozenset({ExamStatus.IN_PROGRESS}),
    ExamStatus.IN_PROGRESS: frozenset({ExamStatus.COMPLETED}),
    ExamStatus.COMPLETED: frozenset({ExamStatus.READY_FOR_VALIDATION}),
    ExamStatus.READY_FOR_VALIDATION: frozenset({
        ExamStatus.APPROVED,
        ExamStatus.REJECTED,
        ExamStatus.REVIEW,
    }),
    ExamStatus.REVIEW: frozenset(),
    ExamStatus.APPROVED: frozenset(),
    ExamStatus.REJECTED: frozenset(),
}

SAMPLE_TRANSITIONS: Dict[SampleStatus, FrozenSet[SampleStatus]] = {
    SampleStatus.PENDING: frozenset({SampleStatus.LABELED}),
    SampleStatus.LABELED: frozenset({SampleStatus.READY_FOR_LAB}),
    SampleStatus.READY_FOR_LAB: frozenset({SampleStatus.RECEIVED}),
    SampleStatus.RECEIVED: frozenset({SampleStatus.IN_PROGRESS}),
    SampleStatus.IN_PROGRESS: frozenset({SampleStatus.COMPLETED}),
    SampleStatus.COMPLETED: frozenset(),
    SampleStatus.REJECTED: frozenset(),
}

# Exam states that count as settled when deriving sample completion
VALIDATION_TERMINAL_STATUSES: FrozenSet[ExamStatus] = frozenset({
    ExamStatus.APPROVED,
    ExamStatus.REJECTED,
})
VALIDATION_QUEUE_STATUSES: FrozenSet[ExamStatus] = VALIDATION_TERMINAL_STATUSES | {
    ExamStatus.READY_FOR_VALIDATION,
}

# Sample states the exam-driven completion sync leaves untouched
SAMPLE_SETTLED_STATUSES: FrozenSet[SampleStatus] = frozenset({
    SampleStatus.COMPLETED,
    SampleStatus.REJECTED,
})


_AUDIT_ACTION_VALUES: Set[str] = {action.value for action in AuditAction}


def is_audit_action(value: object) -> bool:
    return isinstance(value, str) and value in _AUDIT_ACTION_VALUES


def parse_audit_action(value: object) -> Optional[AuditAction]:
    """Known action or None; unknown strings never map to a transition."""
    if not is_audit_action(value):
        return None
    return AuditAction(value)


def is_exam_status(value: object) -> bool:
    return isinstance(value, str) and value in {s.value for s in ExamStatus}


def is_sample_status(value: object) -> bool:
    return isinstance(value, str) and value in {s.value for s in SampleStatus}


def is_work_order_status(value: object) -> bool:
    return isinstance(value, str) and value in {s.value for s in WorkOrderStatus}


def can_transition(current, target) -> bool:
    """Check a forward transition against the exam or sample table"""
    if isinstance(current, ExamStatus) and isinstance(target, ExamStatus):
        return target in EXAM_TRANSITIONS.get(current, frozenset())
    if isinstance(current, SampleStatus) and isinstance(target, SampleStatus):
        return target in SAMPLE_TRANSITIONS.get(current, frozenset())
    return False
