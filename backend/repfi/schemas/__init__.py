# backend/repfi/schemas/__init__.py
"""
Pydantic schemas for API request/response validation.

- comptable: Upload form, period, file, batch status, ETL and download schemas
- errors: Error response formats

Usage:
    from repfi.schemas import ComptableUploadResponse, BatchStatusResponse
    from repfi.schemas import ErrorDetail
"""

from repfi.schemas.comptable import (
    ComptableUploadForm,
    RequiredFileResponse,
    FileFormatResponse,
    PeriodSummaryResponse,
    ComptablePeriodResponse,
    ComptableFileResponse,
    ComptableUploadResponse,
    BatchFileStatusResponse,
    BatchStatusResponse,
    PeriodListResponse,
    PeriodDeleteResponse,
    ComptableUpdateResponse,
    TriggerEtlRequest,
    EtlTriggerResponse,
    ClientSummaryResponse,
    ProcessingPeriodResponse,
    ProcessingPeriodListResponse,
    ExportDownloadResponse,
)
from repfi.schemas.errors import ErrorDetail, ValidationErrorDetail

__all__ = [
    # Comptable
    "ComptableUploadForm",
    "RequiredFileResponse",
    "FileFormatResponse",
    "PeriodSummaryResponse",
    "ComptablePeriodResponse",
    "ComptableFileResponse",
    "ComptableUploadResponse",
    "BatchFileStatusResponse",
    "BatchStatusResponse",
    "PeriodListResponse",
    "PeriodDeleteResponse",
    "ComptableUpdateResponse",
    "TriggerEtlRequest",
    "EtlTriggerResponse",
    "ClientSummaryResponse",
    "ProcessingPeriodResponse",
    "ProcessingPeriodListResponse",
    "ExportDownloadResponse",
    # Errors
    "ErrorDetail",
    "ValidationErrorDetail",
]
