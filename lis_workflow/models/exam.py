"""
Exam model for the LIS workflow core
"""

from sqlalchemy import Column, String, DateTime, Text, Enum, ForeignKey, JSON
from sqlalchemy.orm import relationship
from typing import Optional
from uuid import uuid4

from ..core.clock import utcnow, to_token
from ..core.database import Base
from .status import ExamStatus, VALIDATION_TERMINAL_STATUSES


class Exam(Base):
    """Result capture and validation record for one test on one sample"""
    
    __tablename__ = "exams"
    
    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    
    # References
    sample_id = Column(String(36), ForeignKey("samples.id"), nullable=False, index=True)
    exam_type_id = Column(String(36), ForeignKey("exam_types.id"), nullable=False, index=True)
    
    # Status and results
    status = Column(Enum(ExamStatus), default=ExamStatus.PENDING, nullable=False, index=True)
    results = Column(JSON)
    
    # Timing information
    started_at = Column(DateTime)
    resulted_at = Column(DateTime)
    validated_at = Column(DateTime)
    
    # Personnel
    performed_by = Column(String(100))
    validated_by = Column(String(100))
    
    notes = Column(Text)
    
    # Audit fields; updated_at doubles as the optimistic concurrency token
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    
    # Relationships
    sample = relationship("Sample", back_populates="exams")
    exam_type = relationship("ExamType")
    
    def __repr__(self):
        return f"<Exam(id={self.id}, sample_id='{self.sample_id}', status='{self.status.value}')>"
    
    @property
    def version_token(self) -> Optional[str]:
        return to_token(self.updated_at)
    
    @property
    def is_validated(self) -> bool:
        return self.status in VALIDATION_TERMINAL_STATUSES
    
    def to_dict(self) -> dict:
        """Convert exam to dictionary"""
        return {
            "id": self.id,
            "sample_id": self.sample_id,
            "exam_type_id": self.exam_type_id,
            "status": self.status.value if self.status else None,
            "results": self.results or {},
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "resulted_at": self.resulted_at.isoformat() if self.resulted_at else None,
            "performed_by": self.performed_by,
            "validated_by": self.validated_by,
            "validated_at": self.validated_at.isoformat() if self.validated_at else None,
            "notes": self.notes,
            "updated_at": self.version_token,
        }
