"""
Data store contract consumed by the workflow services

Repositories expose async CRUD per entity. Mutations never raise for store
errors; they return a MutationResult carrying either the written record or
the errors the backend reported.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar("T")


@dataclass
class StoreError:
    """Error reported by the backing store"""
    message: str
    error_type: Optional[str] = None


@dataclass
class MutationResult(Generic[T]):
    """Outcome of a create/update/delete call"""
    data: Optional[T] = None
    errors: List[StoreError] = field(default_factory=list)
    
    @property
    def succeeded(self) -> bool:
        """Errors present or no id returned both count as failure"""
        return not self.errors and self.data is not None and getattr(self.data, "id", None) is not None
    
    def error_message(self, fallback: str) -> str:
        if self.errors and self.errors[0].message:
            return self.errors[0].message
        return fallback


class Repository(ABC, Generic[T]):
    """CRUD operations for a single entity type"""
    
    @abstractmethod
    async def get(self, record_id: Any) -> Optional[T]:
        """Fetch one record by id, None when absent"""
    
    @abstractmethod
    async def list(self, **filters: Any) -> List[T]:
        """List records matching all equality filters"""
    
    @abstractmethod
    async def create(self, **fields: Any) -> MutationResult[T]:
        """Insert a record"""
    
    @abstractmethod
    async def update(self, record_id: Any, **fields: Any) -> MutationResult[T]:
        """Update a record and stamp a fresh version token"""
    
    @abstractmethod
    async def delete(self, record_id: Any) -> MutationResult[T]:
        """Delete a record"""


class DataStore(ABC):
    """Bundle of repositories the services work against"""
    
    work_orders: Repository
    samples: Repository
    exam_types: Repository
    exams: Repository
    audit_events: Repository
