"""
Audit event model (append-only)
"""

import json
from sqlalchemy import Column, Integer, String, DateTime, Text
from typing import Any, Dict, Optional

from ..core.clock import utcnow
from ..core.database import Base


class AuditEvent(Base):
    """Immutable record of one state change or notable action"""
    
    __tablename__ = "audit_events"
    
    # Autoincrement id keeps insertion order stable within one timestamp
    id = Column(Integer, primary_key=True, autoincrement=True)
    
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    user_id = Column(String(100), nullable=False)
    timestamp = Column(DateTime, nullable=False)
    
    # Pre-serialized JSON; "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", Text)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<AuditEvent(id={self.id}, action='{self.action}', entity='{self.entity_type}:{self.entity_id}')>"
    
    @property
    def event_metadata(self) -> Optional[Dict[str, Any]]:
        """Parsed metadata, or None when absent or unreadable"""
        if not self.metadata_json:
            return None
        try:
            parsed = json.loads(self.metadata_json)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "metadata": self.event_metadata,
        }
