"""
REST API for the LIS workflow core
Thin action layer: each endpoint calls one lifecycle operation and returns
its discriminated result unchanged, with an HTTP status matching the kind
of failure.
"""

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
import logging

from ..core.config import settings
from ..core.database import db_manager
from ..core.exceptions import LISException
from ..models.status import AuditEntityType
from ..services.audit import AuditEmitter, AuditTrail
from ..services.exam_lifecycle import ExamLifecycleService
from ..services.outcomes import ErrorKind, OperationResult
from ..services.sample_lifecycle import SampleLifecycleService
from ..services.specimen_generation import SpecimenGenerationService
from ..store.base import DataStore
from ..store.sqlalchemy_store import SQLAlchemyDataStore
from .schemas import (
    UserAction, ResultsRequest, ApproveRequest, RejectRequest, IncidenceRequest,
    RejectSampleRequest, ScanRequest, OperationResponse, AuditTrailResponse,
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Laboratory workflow API: specimen generation, sample tracking, exam results and validation",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api_cors_origins,
    allow_credentials=True,
    allow_methods=settings.api_cors_methods,
    allow_headers=settings.api_cors_headers,
)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.VALIDATION: 422,  # constant name differs across Starlette releases
    ErrorKind.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PERSISTENCE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# Dependencies (overridden in tests)
def get_store() -> DataStore:
    return SQLAlchemyDataStore()


def get_sample_service(store: DataStore = Depends(get_store)) -> SampleLifecycleService:
    return SampleLifecycleService(store, AuditEmitter(store))


def get_exam_service(
    store: DataStore = Depends(get_store),
    samples: SampleLifecycleService = Depends(get_sample_service),
) -> ExamLifecycleService:
    return ExamLifecycleService(store, samples.audit, samples)


def get_specimen_service(store: DataStore = Depends(get_store)) -> SpecimenGenerationService:
    return SpecimenGenerationService(store)


def to_response(result: OperationResult) -> JSONResponse:
    """Serialize a lifecycle result, keeping its body shape for every status"""
    if result.ok:
        return JSONResponse(status_code=status.HTTP_200_OK, content=result.to_dict())
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(result.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=result.to_dict(),
    )


@app.exception_handler(LISException)
async def lis_exception_handler(request: Request, exc: LISException):
    """Core errors that escaped an operation boundary; details stay in the log"""
    logger.error(f"Unhandled error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "Error interno del servidor"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies get the same result shape as service failures"""
    fields = sorted({
        ".".join(str(part) for part in error["loc"][1:]) or "body" for error in exc.errors()
    })
    logger.warning(f"Rejected request to {request.url.path}: invalid {', '.join(fields)}")
    return JSONResponse(
        status_code=STATUS_BY_KIND[ErrorKind.VALIDATION],
        content={"ok": False, "error": "Solicitud inválida"},
    )


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint"""
    database = "healthy" if db_manager.test_connection() else "unhealthy"
    return {
        "status": "healthy" if database == "healthy" else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.app_version,
        "environment": settings.environment,
        "services": {"database": database, "api": "healthy"},
    }


# Exam endpoints
@app.get("/exams/{exam_id}", response_model=OperationResponse, tags=["Exams"])
async def get_exam(exam_id: str, exams: ExamLifecycleService = Depends(get_exam_service)):
    """Current exam record and its version token"""
    return to_response(await exams.get_exam(exam_id))


@app.post("/exams/{exam_id}/start", response_model=OperationResponse, tags=["Exams"])
async def start_exam(
    exam_id: str,
    body: UserAction,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    return to_response(await exams.mark_started(exam_id, body.user_id))


@app.post("/exams/{exam_id}/draft", response_model=OperationResponse, tags=["Exams"])
async def save_exam_draft(
    exam_id: str,
    body: ResultsRequest,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    """Save results without changing the exam status"""
    return to_response(
        await exams.save_draft(exam_id, body.results, body.user_id, body.expected_version)
    )


@app.post("/exams/{exam_id}/finalize", response_model=OperationResponse, tags=["Exams"])
async def finalize_exam(
    exam_id: str,
    body: ResultsRequest,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    return to_response(
        await exams.finalize(exam_id, body.results, body.user_id, body.expected_version)
    )


@app.post("/exams/{exam_id}/send-to-validation", response_model=OperationResponse, tags=["Exams"])
async def send_exam_to_validation(
    exam_id: str,
    body: UserAction,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    return to_response(await exams.send_to_validation(exam_id, body.user_id))


@app.post("/exams/{exam_id}/approve", response_model=OperationResponse, tags=["Validation"])
async def approve_exam(
    exam_id: str,
    body: ApproveRequest,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    return to_response(
        await exams.approve(exam_id, body.user_id, body.comments, body.expected_version)
    )


@app.post("/exams/{exam_id}/reject", response_model=OperationResponse, tags=["Validation"])
async def reject_exam(
    exam_id: str,
    body: RejectRequest,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    return to_response(
        await exams.reject(exam_id, body.user_id, body.reason, body.comments, body.expected_version)
    )


@app.post("/exams/{exam_id}/incidences", response_model=OperationResponse, tags=["Validation"])
async def create_exam_incidence(
    exam_id: str,
    body: IncidenceRequest,
    exams: ExamLifecycleService = Depends(get_exam_service)
):
    """Record an incidence; rework types move a queued exam to review"""
    return to_response(
        await exams.create_incidence(exam_id, body.user_id, body.incidence_type, body.description)
    )


# Sample endpoints
@app.post("/samples/scan", response_model=OperationResponse, tags=["Samples"])
async def scan_sample(body: ScanRequest, samples: SampleLifecycleService = Depends(get_sample_service)):
    """Resolve a scanned id or barcode"""
    return to_response(await samples.scan_sample(body.code, body.user_id))


@app.post("/samples/{sample_id}/receive", response_model=OperationResponse, tags=["Samples"])
async def receive_sample(
    sample_id: str,
    body: UserAction,
    samples: SampleLifecycleService = Depends(get_sample_service)
):
    return to_response(await samples.mark_received(sample_id, body.user_id))


@app.post("/samples/{sample_id}/start", response_model=OperationResponse, tags=["Samples"])
async def start_sample(
    sample_id: str,
    body: UserAction,
    samples: SampleLifecycleService = Depends(get_sample_service)
):
    return to_response(await samples.mark_in_progress(sample_id, body.user_id))


@app.post("/samples/{sample_id}/complete", response_model=OperationResponse, tags=["Samples"])
async def complete_sample(
    sample_id: str,
    body: UserAction,
    samples: SampleLifecycleService = Depends(get_sample_service)
):
    return to_response(await samples.mark_completed(sample_id, body.user_id))


@app.post("/samples/{sample_id}/reject", response_model=OperationResponse, tags=["Samples"])
async def reject_sample(
    sample_id: str,
    body: RejectSampleRequest,
    samples: SampleLifecycleService = Depends(get_sample_service)
):
    return to_response(await samples.mark_rejected(sample_id, body.user_id, body.reason))


@app.post("/samples/{sample_id}/reprint-label", response_model=OperationResponse, tags=["Samples"])
async def reprint_sample_label(
    sample_id: str,
    body: UserAction,
    samples: SampleLifecycleService = Depends(get_sample_service)
):
    return to_response(await samples.reprint_label(sample_id, body.user_id))


# Work order endpoints
@app.post("/work-orders/{work_order_id}/specimens", response_model=OperationResponse, tags=["Work Orders"])
async def generate_specimens(
    work_order_id: str,
    body: UserAction,
    specimens: SpecimenGenerationService = Depends(get_specimen_service)
):
    """Create one sample and one exam per requested exam type (idempotent)"""
    return to_response(await specimens.generate_specimens_for_order(work_order_id, body.user_id))


@app.post("/work-orders/{work_order_id}/labels-printed", response_model=OperationResponse, tags=["Work Orders"])
async def mark_labels_printed(
    work_order_id: str,
    body: UserAction,
    specimens: SpecimenGenerationService = Depends(get_specimen_service)
):
    return to_response(await specimens.mark_labels_printed_for_order(work_order_id, body.user_id))


@app.post("/work-orders/{work_order_id}/ready-for-lab", response_model=OperationResponse, tags=["Work Orders"])
async def mark_order_ready_for_lab(
    work_order_id: str,
    body: UserAction,
    specimens: SpecimenGenerationService = Depends(get_specimen_service)
):
    return to_response(await specimens.mark_order_ready_for_lab(work_order_id, body.user_id))


# Audit trail
@app.get("/audit/{entity_type}/{entity_id}", response_model=AuditTrailResponse, tags=["Audit"])
async def get_audit_trail(entity_type: str, entity_id: str, store: DataStore = Depends(get_store)):
    """Chronological audit events of one entity"""
    try:
        kind = AuditEntityType(entity_type)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown entity type {entity_type}"
        )
    
    events = await AuditTrail(store).events_for(kind, entity_id)
    return {"entity_type": kind.value, "entity_id": entity_id, "events": events}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
