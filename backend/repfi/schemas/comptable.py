# backend/repfi/schemas/comptable.py
"""
Pydantic schemas for comptable upload, period, ETL and download endpoints.

Field names are snake_case in Python and camelCase on the wire, matching
the form fields sent by the frontend (clientId, periodStart, periodEnd).
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from repfi.models import FileType, ProcessingStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class ComptableUploadForm(_CamelModel):
    """
    The three text fields of an upload form.

    Dates are kept as strings here; parsing happens in the service so that
    an unparseable date produces a dedicated error.
    """

    client_id: str = Field(..., min_length=1)
    period_start: str = Field(..., min_length=1)
    period_end: str = Field(..., min_length=1)


class TriggerEtlRequest(_CamelModel):
    """Body of POST /files/comptable/trigger-etl: {"batchId": "<uuid>"}."""

    batch_id: uuid.UUID


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class RequiredFileResponse(_CamelModel):
    type: FileType
    label: str


class FileFormatResponse(_CamelModel):
    version: str
    description: str
    required_files: list[RequiredFileResponse]


class PeriodSummaryResponse(_CamelModel):
    id: str
    start: datetime
    end: datetime
    year: int


class ComptablePeriodResponse(_CamelModel):
    id: str
    client_id: str
    period_start: datetime
    period_end: datetime
    year: int
    batch_id: str
    status: ProcessingStatus
    progress: int
    error_message: str | None = None
    excel_file_url: str | None = None
    processed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ComptableFileResponse(_CamelModel):
    id: str
    file_name: str
    file_type: FileType
    file_year: int
    s3_key: str
    s3_url: str
    file_size: int
    mime_type: str
    status: str
    processing_status: ProcessingStatus
    batch_id: str
    period_start: datetime
    period_end: datetime
    client_id: str
    period_id: str
    label: str | None = None


class ComptableUploadResponse(_CamelModel):
    message: str
    batch_id: str
    period: PeriodSummaryResponse
    s3_prefix: str
    files: list[ComptableFileResponse]
    comptable_period: ComptablePeriodResponse
    file_format: FileFormatResponse


class BatchFileStatusResponse(_CamelModel):
    id: str
    file_name: str
    file_type: FileType
    status: str
    processing_status: ProcessingStatus


class BatchStatusResponse(_CamelModel):
    batch_id: str
    status: ProcessingStatus
    progress: int = Field(..., ge=0, le=100)
    period_start: datetime
    period_end: datetime
    processed_at: datetime | None = None
    files: list[BatchFileStatusResponse]


class PeriodListResponse(_CamelModel):
    periods: list[ComptablePeriodResponse]


class PeriodDeleteResponse(_CamelModel):
    message: str
    deleted_files: int


class ComptableUpdateResponse(_CamelModel):
    message: str
    batch_id: str
    period: PeriodSummaryResponse
    s3_prefix: str
    files: list[ComptableFileResponse]
    comptable_period: ComptablePeriodResponse


# =============================================================================
# ETL
# =============================================================================

class EtlTriggerResponse(_CamelModel):
    message: str
    batch_id: str
    dag_run_id: str
    status: ProcessingStatus
    s3_prefix: str


class ClientSummaryResponse(_CamelModel):
    id: str
    name: str


class ProcessingPeriodResponse(ComptablePeriodResponse):
    client: ClientSummaryResponse


class ProcessingPeriodListResponse(_CamelModel):
    processing_periods: list[ProcessingPeriodResponse]


# =============================================================================
# DOWNLOAD
# =============================================================================

class ExportDownloadResponse(_CamelModel):
    """Signed link to the Excel export produced by the ETL."""

    url: str
    file_name: str
    mime_type: str
