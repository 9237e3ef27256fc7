"""
Exam type catalog model
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, Enum, JSON
from uuid import uuid4

from ..core.clock import utcnow
from ..core.database import Base
from .status import SampleType


class ExamType(Base):
    """Catalog definition of a test and its result field schema"""
    
    __tablename__ = "exam_types"
    
    # Primary key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    
    # Catalog information
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    sample_type = Column(Enum(SampleType), default=SampleType.OTHER)
    
    # Result form definition: {"sections": [{"id", "label", "fields": [...]}]}
    field_schema = Column(JSON, nullable=False)
    
    is_active = Column(Boolean, default=True)
    version = Column(Integer, default=1)
    
    # Audit fields
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<ExamType(id={self.id}, code='{self.code}', name='{self.name}')>"
    
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "sample_type": self.sample_type.value if self.sample_type else None,
            "field_schema": self.field_schema,
            "is_active": self.is_active,
            "version": self.version,
        }
