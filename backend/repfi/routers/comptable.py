# backend/repfi/routers/comptable.py
"""
Comptable (accounting) file endpoints.

A comptable period is uploaded as one multipart form holding the client,
the period bounds and the four Excel exports, each under its file type:

    clientId, periodStart, periodEnd,
    GRAND_LIVRE, PLAN_COMPTES, PLAN_TIERS, CODE_JOURNAL

The files are stored in S3 and recorded as PENDING. POST /trigger-etl hands
the batch to the ETL, which then advances the period status that clients
poll via /status/{batch_id}. PUT /update replaces the files of a period
that is not being processed.

Errors are raised by the services and mapped to HTTP by the handlers in
main.py.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session

from repfi.database import get_db
from repfi.dependencies import get_current_user, get_etl_service, get_period_service, get_upload_service
from repfi.middleware.rate_limit import limiter, RATE_LIMIT_DEFAULT, RATE_LIMIT_UPLOAD, RATE_LIMIT_WRITE
from repfi.models import FileType, User
from repfi.schemas.comptable import (
    BatchFileStatusResponse,
    BatchStatusResponse,
    ComptableFileResponse,
    ComptablePeriodResponse,
    ComptableUpdateResponse,
    ComptableUploadResponse,
    EtlTriggerResponse,
    FileFormatResponse,
    PeriodDeleteResponse,
    PeriodListResponse,
    PeriodSummaryResponse,
    ProcessingPeriodListResponse,
    ProcessingPeriodResponse,
    RequiredFileResponse,
    TriggerEtlRequest,
)
from repfi.schemas.errors import ErrorDetail
from repfi.services.comptable import (
    ComptableEtlService,
    ComptablePeriodService,
    ComptableUploadService,
    IncomingFile,
)
from repfi.services.comptable.upload import UploadResult, required_files_description
from repfi.services.constants import FILE_FORMAT_DESCRIPTION, FILE_FORMAT_VERSION, FILE_TYPE_LABELS

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/files/comptable",
    tags=["Comptable"],
)

UPLOAD_SUCCESS_MESSAGE = "Comptable files uploaded successfully"
UPDATE_SUCCESS_MESSAGE = "Period updated successfully"
ETL_TRIGGERED_MESSAGE = "ETL triggered"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _read_upload(upload: UploadFile | None) -> IncomingFile | None:
    if upload is None or not upload.filename:
        return None
    return IncomingFile(
        filename=upload.filename,
        content_type=upload.content_type,
        content=upload.file.read(),
    )


def _file_format() -> FileFormatResponse:
    return FileFormatResponse(
        version=FILE_FORMAT_VERSION,
        description=FILE_FORMAT_DESCRIPTION,
        required_files=[
            RequiredFileResponse(type=file_type, label=label)
            for file_type, label in required_files_description()
        ],
    )


def _labelled_files(result: UploadResult) -> list[ComptableFileResponse]:
    return [
        ComptableFileResponse.model_validate(record).model_copy(
            update={"label": FILE_TYPE_LABELS[record.file_type]}
        )
        for record in result.files
    ]


def _period_summary(result: UploadResult) -> PeriodSummaryResponse:
    period = result.period
    return PeriodSummaryResponse(
        id=period.id,
        start=period.period_start,
        end=period.period_end,
        year=period.year,
    )


def _build_upload_response(result: UploadResult) -> ComptableUploadResponse:
    return ComptableUploadResponse(
        message=UPLOAD_SUCCESS_MESSAGE,
        batch_id=result.period.batch_id,
        period=_period_summary(result),
        s3_prefix=result.s3_prefix,
        files=_labelled_files(result),
        comptable_period=ComptablePeriodResponse.model_validate(result.period),
        file_format=_file_format(),
    )


def _build_update_response(result: UploadResult) -> ComptableUpdateResponse:
    return ComptableUpdateResponse(
        message=UPDATE_SUCCESS_MESSAGE,
        batch_id=result.period.batch_id,
        period=_period_summary(result),
        s3_prefix=result.s3_prefix,
        files=_labelled_files(result),
        comptable_period=ComptablePeriodResponse.model_validate(result.period),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post(
    "/upload",
    response_model=ComptableUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload the files of a comptable period",
    responses={
        400: {"model": ErrorDetail, "description": "Missing files, invalid dates or non-Excel file"},
        401: {"description": "Not authenticated"},
        404: {"model": ErrorDetail, "description": "Client not found"},
        409: {"model": ErrorDetail, "description": "Overlaps an already processed period"},
        413: {"model": ErrorDetail, "description": "File too large"},
        502: {"model": ErrorDetail, "description": "Object storage failure"},
    },
)
@limiter.limit(RATE_LIMIT_UPLOAD)
def upload_comptable_files(
        request: Request,  # Required for rate limiting
        client_id: str | None = Form(None, alias="clientId"),
        period_start: str | None = Form(None, alias="periodStart"),
        period_end: str | None = Form(None, alias="periodEnd"),
        grand_livre: UploadFile | None = File(None, alias=FileType.GRAND_LIVRE.value),
        plan_comptes: UploadFile | None = File(None, alias=FileType.PLAN_COMPTES.value),
        plan_tiers: UploadFile | None = File(None, alias=FileType.PLAN_TIERS.value),
        code_journal: UploadFile | None = File(None, alias=FileType.CODE_JOURNAL.value),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptableUploadService = Depends(get_upload_service),
) -> ComptableUploadResponse:
    """
    Upload the four Excel exports of a billing period.

    Files already stored for the same period are copied to a timestamped
    backup folder before being overwritten.
    """
    files = {
        FileType.GRAND_LIVRE: _read_upload(grand_livre),
        FileType.PLAN_COMPTES: _read_upload(plan_comptes),
        FileType.PLAN_TIERS: _read_upload(plan_tiers),
        FileType.CODE_JOURNAL: _read_upload(code_journal),
    }

    result = service.upload_period(
        db=db,
        user=current_user,
        client_id=client_id,
        period_start=period_start,
        period_end=period_end,
        files=files,
    )
    return _build_upload_response(result)


@router.get(
    "/status/{batch_id}",
    response_model=BatchStatusResponse,
    summary="Get the processing status of an upload batch",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def get_batch_status(
        request: Request,
        batch_id: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptablePeriodService = Depends(get_period_service),
) -> BatchStatusResponse:
    batch = service.get_batch_status(db, current_user, batch_id)
    period = batch.period

    return BatchStatusResponse(
        batch_id=period.batch_id,
        status=period.status,
        progress=batch.progress,
        period_start=period.period_start,
        period_end=period.period_end,
        processed_at=period.processed_at,
        files=[BatchFileStatusResponse.model_validate(f) for f in period.files],
    )


@router.get(
    "/periods",
    response_model=PeriodListResponse,
    summary="List comptable periods",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_periods(
        request: Request,
        client_id: str | None = Query(None, alias="clientId", description="Only this client's periods"),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptablePeriodService = Depends(get_period_service),
) -> PeriodListResponse:
    periods = service.list_periods(db, current_user, client_id)
    return PeriodListResponse(
        periods=[ComptablePeriodResponse.model_validate(p) for p in periods],
    )


@router.delete(
    "/periods/{period_id}",
    response_model=PeriodDeleteResponse,
    summary="Delete a comptable period and its files",
    responses={
        400: {"model": ErrorDetail, "description": "Period is being processed"},
        403: {"model": ErrorDetail, "description": "Period of another company"},
        404: {"model": ErrorDetail, "description": "Period not found"},
    },
)
@limiter.limit(RATE_LIMIT_WRITE)
def delete_period(
        request: Request,
        period_id: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptablePeriodService = Depends(get_period_service),
) -> PeriodDeleteResponse:
    deleted_files = service.delete_period(db, current_user, period_id)
    return PeriodDeleteResponse(
        message="Period deleted successfully",
        deleted_files=deleted_files,
    )


@router.put(
    "/update",
    response_model=ComptableUpdateResponse,
    summary="Replace the files of a comptable period",
    responses={
        400: {"model": ErrorDetail, "description": "Missing files, non-Excel file or period being processed"},
        403: {"model": ErrorDetail, "description": "Period of another company"},
        404: {"model": ErrorDetail, "description": "Period not found"},
        413: {"model": ErrorDetail, "description": "File too large"},
        502: {"model": ErrorDetail, "description": "Object storage failure"},
    },
)
@limiter.limit(RATE_LIMIT_UPLOAD)
def update_comptable_files(
        request: Request,
        period_id: str | None = Form(None, alias="periodId"),
        grand_livre: UploadFile | None = File(None, alias=FileType.GRAND_LIVRE.value),
        plan_comptes: UploadFile | None = File(None, alias=FileType.PLAN_COMPTES.value),
        plan_tiers: UploadFile | None = File(None, alias=FileType.PLAN_TIERS.value),
        code_journal: UploadFile | None = File(None, alias=FileType.CODE_JOURNAL.value),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptableUploadService = Depends(get_upload_service),
) -> ComptableUpdateResponse:
    """
    Replace the four Excel exports of an existing period.

    The period keeps its batch id and goes back to PENDING; backups stored
    under the period are kept.
    """
    files = {
        FileType.GRAND_LIVRE: _read_upload(grand_livre),
        FileType.PLAN_COMPTES: _read_upload(plan_comptes),
        FileType.PLAN_TIERS: _read_upload(plan_tiers),
        FileType.CODE_JOURNAL: _read_upload(code_journal),
    }

    result = service.replace_period_files(
        db=db,
        user=current_user,
        period_id=period_id,
        files=files,
    )
    return _build_update_response(result)


@router.post(
    "/trigger-etl",
    response_model=EtlTriggerResponse,
    summary="Start the ETL processing of an upload batch",
    responses={
        400: {"model": ErrorDetail, "description": "Batch does not hold every required file"},
        403: {"model": ErrorDetail, "description": "Batch of another company"},
        404: {"model": ErrorDetail, "description": "Batch not found"},
        409: {"model": ErrorDetail, "description": "Period already processing, processed or overlapping"},
        502: {"model": ErrorDetail, "description": "ETL orchestrator failure"},
    },
)
@limiter.limit(RATE_LIMIT_WRITE)
def trigger_etl(
        request: Request,
        body: TriggerEtlRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptableEtlService = Depends(get_etl_service),
) -> EtlTriggerResponse:
    result = service.trigger(db, current_user, str(body.batch_id))
    return EtlTriggerResponse(
        message=ETL_TRIGGERED_MESSAGE,
        batch_id=result.period.batch_id,
        dag_run_id=result.dag_run_id,
        status=result.period.status,
        s3_prefix=result.s3_prefix,
    )


@router.get(
    "/trigger-etl",
    response_model=ProcessingPeriodListResponse,
    summary="List periods waiting for or undergoing ETL processing",
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def list_processing_periods(
        request: Request,
        client_id: str | None = Query(None, alias="clientId", description="Only this client's periods"),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptableEtlService = Depends(get_etl_service),
) -> ProcessingPeriodListResponse:
    periods = service.list_in_progress(db, current_user, client_id)
    return ProcessingPeriodListResponse(
        processing_periods=[ProcessingPeriodResponse.model_validate(p) for p in periods],
    )
