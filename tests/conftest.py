"""
Pytest configuration and fixtures for the LIS workflow core tests
"""

import pytest
from typing import Any, Dict, Optional
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from lis_workflow.core.config import Settings
from lis_workflow.core.database import Base, create_session_factory
from lis_workflow.models import ExamStatus, SampleStatus, SampleType
from lis_workflow.services.audit import AuditEmitter, AuditTrail
from lis_workflow.services.exam_lifecycle import ExamLifecycleService
from lis_workflow.services.sample_lifecycle import SampleLifecycleService
from lis_workflow.services.specimen_generation import SpecimenGenerationService
from lis_workflow.store.base import DataStore, MutationResult, Repository, StoreError
from lis_workflow.store.sqlalchemy_store import SQLAlchemyDataStore

GLUCOSE_SCHEMA = {
    "sections": [
        {
            "id": "main",
            "label": "Resultado",
            "fields": [
                {"key": "glucose", "label": "Glucosa", "type": "numeric",
                 "unit": "mg/dL", "referenceRange": "70-100"},
                {"key": "flag", "label": "Indicador", "type": "enum",
                 "options": ["normal", "alto", "bajo"]},
                {"key": "observations", "label": "Observaciones", "type": "string"},
            ],
        }
    ]
}

URINE_SCHEMA = {
    "sections": [
        {
            "id": "fisico",
            "label": "Examen físico",
            "fields": [
                {"key": "color", "label": "Color", "type": "string"},
                {"key": "ph", "label": "pH", "type": "numeric"},
            ],
        }
    ]
}


class FaultyRepository(Repository):
    """Repository wrapper that records calls and fails mutations on demand"""
    
    def __init__(self, inner: Repository):
        self.inner = inner
        self.calls = []
        self._failures: Dict[str, int] = {}
    
    def fail(self, method: str, after: int = 0):
        """Fail ``method`` once ``after`` successful calls have gone through"""
        self._failures[method] = after
    
    async def _mutate(self, method: str, *args: Any, **fields: Any) -> MutationResult:
        self.calls.append(method)
        if method in self._failures:
            if self._failures[method] <= 0:
                return MutationResult(errors=[StoreError("database is locked", "OperationalError")])
            self._failures[method] -= 1
        return await getattr(self.inner, method)(*args, **fields)
    
    async def get(self, record_id: Any) -> Optional[Any]:
        self.calls.append("get")
        return await self.inner.get(record_id)
    
    async def list(self, **filters: Any):
        self.calls.append("list")
        return await self.inner.list(**filters)
    
    async def create(self, **fields: Any) -> MutationResult:
        return await self._mutate("create", **fields)
    
    async def update(self, record_id: Any, **fields: Any) -> MutationResult:
        return await self._mutate("update", record_id, **fields)
    
    async def delete(self, record_id: Any) -> MutationResult:
        return await self._mutate("delete", record_id)


class FaultyDataStore(DataStore):
    """Data store whose repositories can be told to fail"""
    
    def __init__(self, inner: DataStore):
        self.work_orders = FaultyRepository(inner.work_orders)
        self.samples = FaultyRepository(inner.samples)
        self.exam_types = FaultyRepository(inner.exam_types)
        self.exams = FaultyRepository(inner.exams)
        self.audit_events = FaultyRepository(inner.audit_events)
    
    def total_calls(self) -> int:
        return sum(
            len(repository.calls)
            for repository in (self.work_orders, self.samples, self.exam_types, self.exams, self.audit_events)
        )


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Create a database session for testing"""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(session_factory) -> SQLAlchemyDataStore:
    return SQLAlchemyDataStore(session_factory)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(environment="testing", workflow_barcode_prefix="SMP")


@pytest.fixture
def audit(store) -> AuditEmitter:
    return AuditEmitter(store)


@pytest.fixture
def trail(store) -> AuditTrail:
    return AuditTrail(store)


@pytest.fixture
def samples(store, audit) -> SampleLifecycleService:
    return SampleLifecycleService(store, audit)


@pytest.fixture
def exams(store, audit, samples, test_settings) -> ExamLifecycleService:
    return ExamLifecycleService(store, audit, samples, test_settings)


@pytest.fixture
def specimens(store, audit, test_settings) -> SpecimenGenerationService:
    return SpecimenGenerationService(store, audit, test_settings)


@pytest.fixture
async def glucose_type(store):
    result = await store.exam_types.create(
        code="GLU", name="Glucosa", sample_type=SampleType.SERUM, field_schema=GLUCOSE_SCHEMA
    )
    return result.data


@pytest.fixture
async def urine_type(store):
    result = await store.exam_types.create(
        code="EGO", name="Examen general de orina", sample_type=SampleType.URINE, field_schema=URINE_SCHEMA
    )
    return result.data


@pytest.fixture
async def work_order(store, glucose_type, urine_type):
    result = await store.work_orders.create(
        patient_id="P001",
        accession_number="ORD-0001",
        requested_exam_type_codes=["GLU", "EGO"],
    )
    return result.data


@pytest.fixture
async def single_exam_order(store, glucose_type):
    result = await store.work_orders.create(
        patient_id="P002",
        accession_number="#ORD-0002",
        requested_exam_type_codes=["GLU"],
    )
    return result.data


@pytest.fixture
async def sample(store, single_exam_order, glucose_type):
    """Sample received in the lab with one pending exam"""
    result = await store.samples.create(
        work_order_id=single_exam_order.id,
        exam_type_id=glucose_type.id,
        barcode="SMP-ORD-0002-01",
        status=SampleStatus.RECEIVED,
    )
    return result.data


@pytest.fixture
async def exam(store, sample, glucose_type):
    result = await store.exams.create(
        sample_id=sample.id,
        exam_type_id=glucose_type.id,
        status=ExamStatus.PENDING,
    )
    return result.data


async def set_exam_status(store, exam_id: str, status: ExamStatus):
    """Force an exam into a status, bypassing the lifecycle rules"""
    result = await store.exams.update(exam_id, status=status)
    return result.data


async def add_exam(store, sample_id: str, exam_type_id: str, status: ExamStatus = ExamStatus.PENDING):
    result = await store.exams.create(sample_id=sample_id, exam_type_id=exam_type_id, status=status)
    return result.data
