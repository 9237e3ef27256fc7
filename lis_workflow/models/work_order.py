"""
Work order model for the LIS workflow core
"""

from sqlalchemy import Column, String, DateTime, Text, Enum, JSON
from sqlalchemy.orm import relationship
from typing import List
from uuid import uuid4

from ..core.clock import utcnow, to_token
from ..core.database import Base
from .status import WorkOrderStatus, WorkOrderPriority


class WorkOrder(Base):
    """Clinical request for one or more exams on a patient"""
    
    __tablename__ = "work_orders"
    
    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    
    # Identifiers
    patient_id = Column(String(50), nullable=False, index=True)
    accession_number = Column(String(50), unique=True, index=True)
    
    # Requested exams (ExamType codes)
    requested_exam_type_codes = Column(JSON, nullable=False, default=list)
    
    # Status and priority
    status = Column(Enum(WorkOrderStatus), default=WorkOrderStatus.PENDING, nullable=False)
    priority = Column(Enum(WorkOrderPriority), default=WorkOrderPriority.ROUTINE, nullable=False)
    
    # Ordering information
    requested_at = Column(DateTime, default=utcnow)
    referring_doctor = Column(String(200))
    notes = Column(Text)
    
    # Audit fields
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    
    # Relationships
    samples = relationship("Sample", back_populates="work_order")
    
    def __repr__(self):
        return f"<WorkOrder(id={self.id}, accession_number='{self.accession_number}', status='{self.status.value}')>"
    
    @property
    def requested_codes(self) -> List[str]:
        """Requested exam type codes with empty entries dropped"""
        return [code for code in (self.requested_exam_type_codes or []) if code]
    
    @property
    def version_token(self):
        return to_token(self.updated_at)
    
    def to_dict(self) -> dict:
        """Convert work order to dictionary"""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "accession_number": self.accession_number,
            "requested_exam_type_codes": self.requested_codes,
            "status": self.status.value if self.status else None,
            "priority": self.priority.value if self.priority else None,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "referring_doctor": self.referring_doctor,
            "notes": self.notes,
            "updated_at": self.version_token,
        }
