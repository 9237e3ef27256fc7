"""
Pydantic schemas for the workflow action API
Request bodies accept camelCase (as sent by the web client) or snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


# Base schemas with common fields
class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class UserAction(BaseSchema):
    """Body of actions that only need the acting user"""
    # Blank actors are rejected by the services with a readable message
    user_id: str = Field("", alias="userId", max_length=100, description="Acting user identifier")


class VersionedAction(UserAction):
    """Action guarded by the record version read by the client"""
    expected_version: Optional[str] = Field(
        None, alias="expectedVersion",
        description="updatedAt token of the record as last read",
    )


# Exam schemas
class ResultsRequest(VersionedAction):
    """Draft save or finalization of exam results"""
    results: Dict[str, Any] = Field(default_factory=dict, description="Results keyed by field key")


class ApproveRequest(VersionedAction):
    comments: Optional[str] = Field(None, max_length=2000)


class RejectRequest(VersionedAction):
    # Empty reasons reach the service, which answers with its own message
    reason: str = Field("", max_length=2000, description="Rejection reason")
    comments: Optional[str] = Field(None, max_length=2000)


class IncidenceRequest(UserAction):
    """Incidence raised on an exam"""
    incidence_type: str = Field("", alias="type", max_length=100, description="Incidence type")
    description: str = Field("", max_length=2000)


# Sample schemas
class RejectSampleRequest(UserAction):
    reason: Optional[str] = Field(None, max_length=2000)


class ScanRequest(UserAction):
    code: str = Field("", max_length=100, description="Sample id or barcode")


# Responses
class OperationResponse(BaseSchema):
    """``{ok: true, updatedAt?, ...}`` or ``{ok: false, error, conflict?}``"""
    
    model_config = ConfigDict(populate_by_name=True, extra="allow")
    
    ok: bool
    updated_at: Optional[str] = Field(None, alias="updatedAt")
    error: Optional[str] = None
    conflict: Optional[bool] = None


class AuditEventResponse(BaseSchema):
    id: int
    entity_type: str
    entity_id: str
    action: str
    user_id: str
    timestamp: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    label: str
    category: str


class AuditTrailResponse(BaseSchema):
    entity_type: str
    entity_id: str
    events: List[AuditEventResponse]
