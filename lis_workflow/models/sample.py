"""
Sample model for the LIS workflow core
"""

from sqlalchemy import Column, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from uuid import uuid4

from ..core.clock import utcnow, to_token
from ..core.database import Base
from .status import SampleStatus


class Sample(Base):
    """Physical specimen for one exam type under a work order"""
    
    __tablename__ = "samples"
    
    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    
    # References
    work_order_id = Column(String(36), ForeignKey("work_orders.id"), nullable=False, index=True)
    exam_type_id = Column(String(36), ForeignKey("exam_types.id"), nullable=False, index=True)
    
    # Sample identifiers
    barcode = Column(String(100), index=True)
    
    # Processing information
    status = Column(Enum(SampleStatus), default=SampleStatus.PENDING, nullable=False, index=True)
    collected_at = Column(DateTime)
    received_at = Column(DateTime)
    
    # Audit fields
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    
    # Relationships
    work_order = relationship("WorkOrder", back_populates="samples")
    exam_type = relationship("ExamType")
    exams = relationship("Exam", back_populates="sample")
    
    def __repr__(self):
        return f"<Sample(id={self.id}, barcode='{self.barcode}', status='{self.status.value}')>"
    
    @property
    def is_finished(self) -> bool:
        return self.status in (SampleStatus.COMPLETED, SampleStatus.REJECTED)
    
    @property
    def version_token(self):
        return to_token(self.updated_at)
    
    def to_dict(self) -> dict:
        """Convert sample to dictionary"""
        return {
            "id": self.id,
            "work_order_id": self.work_order_id,
            "exam_type_id": self.exam_type_id,
            "barcode": self.barcode,
            "status": self.status.value if self.status else None,
            "collected_at": self.collected_at.isoformat() if self.collected_at else None,
            "received_at": self.received_at.isoformat() if self.received_at else None,
            "updated_at": self.version_token,
        }
