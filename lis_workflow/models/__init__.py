# Database models and status taxonomy

from .status import (
    WorkOrderStatus, WorkOrderPriority, SampleStatus, ExamStatus, SampleType,
    AuditAction, AuditEntityType,
)
from .work_order import WorkOrder
from .sample import Sample
from .exam_type import ExamType
from .exam import Exam
from .audit_event import AuditEvent

__all__ = [
    # Models
    "WorkOrder",
    "Sample",
    "ExamType",
    "Exam",
    "AuditEvent",
    
    # Enums
    "WorkOrderStatus",
    "WorkOrderPriority",
    "SampleStatus",
    "ExamStatus",
    "SampleType",
    "AuditAction",
    "AuditEntityType",
]
