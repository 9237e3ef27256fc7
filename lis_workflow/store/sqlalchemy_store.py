"""
SQLAlchemy-backed data store

Every call runs in its own short-lived session; nothing is cached between
calls. Blocking database work is pushed to a worker thread so the async
services never stall the event loop.
"""

import asyncio
import logging
from typing import Any, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.clock import next_version_timestamp
from ..core.database import SessionLocal
from ..models import WorkOrder, Sample, ExamType, Exam, AuditEvent
from .base import DataStore, MutationResult, Repository, StoreError

logger = logging.getLogger(__name__)


class SQLAlchemyRepository(Repository):
    """Repository over one declarative model"""
    
    def __init__(self, model: Type, session_factory: sessionmaker):
        self.model = model
        self.session_factory = session_factory
    
    async def get(self, record_id: Any) -> Optional[Any]:
        if record_id is None:
            return None
        return await asyncio.to_thread(self._get, record_id)
    
    async def list(self, **filters: Any) -> List[Any]:
        return await asyncio.to_thread(self._list, filters)
    
    async def create(self, **fields: Any) -> MutationResult:
        return await asyncio.to_thread(self._create, fields)
    
    async def update(self, record_id: Any, **fields: Any) -> MutationResult:
        return await asyncio.to_thread(self._update, record_id, fields)
    
    async def delete(self, record_id: Any) -> MutationResult:
        return await asyncio.to_thread(self._delete, record_id)
    
    def _get(self, record_id: Any):
        with self.session_factory() as session:
            return session.get(self.model, record_id)
    
    def _list(self, filters: dict) -> List[Any]:
        statement = select(self.model)
        for name, value in filters.items():
            column = getattr(self.model, name, None)
            if column is None:
                raise ValueError(f"Unknown filter '{name}' for {self.model.__name__}")
            statement = statement.where(column == value)
        statement = statement.order_by(self.model.created_at, self.model.id)
        
        with self.session_factory() as session:
            return list(session.scalars(statement).all())
    
    def _create(self, fields: dict) -> MutationResult:
        with self.session_factory() as session:
            try:
                record = self.model(**fields)
                session.add(record)
                session.commit()
                session.refresh(record)
                return MutationResult(data=record)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Error creating {self.model.__name__}: {str(e)}")
                return MutationResult(errors=[StoreError(str(e), type(e).__name__)])
    
    def _update(self, record_id: Any, fields: dict) -> MutationResult:
        with self.session_factory() as session:
            try:
                record = session.get(self.model, record_id)
                if record is None:
                    return MutationResult(errors=[StoreError(f"{self.model.__name__} {record_id} not found", "NotFound")])
                
                for name, value in fields.items():
                    setattr(record, name, value)
                record.updated_at = next_version_timestamp(record.updated_at)
                
                session.commit()
                session.refresh(record)
                return MutationResult(data=record)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Error updating {self.model.__name__} {record_id}: {str(e)}")
                return MutationResult(errors=[StoreError(str(e), type(e).__name__)])
    
    def _delete(self, record_id: Any) -> MutationResult:
        with self.session_factory() as session:
            try:
                record = session.get(self.model, record_id)
                if record is None:
                    return MutationResult(errors=[StoreError(f"{self.model.__name__} {record_id} not found", "NotFound")])
                session.delete(record)
                session.commit()
                return MutationResult(data=record)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Error deleting {self.model.__name__} {record_id}: {str(e)}")
                return MutationResult(errors=[StoreError(str(e), type(e).__name__)])


class SQLAlchemyDataStore(DataStore):
    """Data store with one repository per workflow entity"""
    
    def __init__(self, session_factory: sessionmaker = None):
        self.session_factory = session_factory or SessionLocal
        self.work_orders = SQLAlchemyRepository(WorkOrder, self.session_factory)
        self.samples = SQLAlchemyRepository(Sample, self.session_factory)
        self.exam_types = SQLAlchemyRepository(ExamType, self.session_factory)
        self.exams = SQLAlchemyRepository(Exam, self.session_factory)
        self.audit_events = SQLAlchemyRepository(AuditEvent, self.session_factory)
