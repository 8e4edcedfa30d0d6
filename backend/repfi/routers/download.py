# backend/repfi/routers/download.py
"""
Download endpoints.

Files are never streamed through the API: the response carries a signed S3
URL the browser fetches directly.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from repfi.database import get_db
from repfi.dependencies import get_current_user, get_period_service
from repfi.middleware.rate_limit import limiter, RATE_LIMIT_DEFAULT
from repfi.models import User
from repfi.schemas.comptable import ExportDownloadResponse
from repfi.schemas.errors import ErrorDetail
from repfi.services.comptable import ComptablePeriodService

router = APIRouter(
    prefix="/files/download",
    tags=["Download"],
)


@router.get(
    "/{period_id}",
    response_model=ExportDownloadResponse,
    summary="Get a download link for the Excel export of a period",
    responses={
        400: {"model": ErrorDetail, "description": "No export available for the period"},
        404: {"model": ErrorDetail, "description": "Period not found"},
        502: {"model": ErrorDetail, "description": "Object storage failure"},
    },
)
@limiter.limit(RATE_LIMIT_DEFAULT)
def download_period_export(
        request: Request,
        period_id: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user),
        service: ComptablePeriodService = Depends(get_period_service),
) -> ExportDownloadResponse:
    """The signed URL stays valid for one hour."""
    download = service.get_export_download(db, current_user, period_id)
    return ExportDownloadResponse(
        url=download.url,
        file_name=download.file_name,
        mime_type=download.mime_type,
    )
