# backend/repfi/services/comptable/periods.py
"""
Read, download and delete operations on comptable periods.

Every operation is scoped to the caller's company: a period belonging to
another company raises PermissionDeniedError, except for the export
download where it is reported as not found.
"""

import logging
import math
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from repfi.models import Client, ComptablePeriod, ProcessingStatus, User
from repfi.services.comptable import paths
from repfi.services.constants import (
    DOWNLOAD_URL_EXPIRES_SECONDS,
    EXPORT_MIME_TYPE,
    EXPORT_URL_SCHEME,
    LOCKED_STATUSES,
)
from repfi.services.exceptions import (
    ExportNotAvailableError,
    PeriodLockedError,
    PeriodNotFoundError,
    PermissionDeniedError,
    StorageError,
)
from repfi.services.storage import S3StorageService

logger = logging.getLogger(__name__)

_S3_URL = re.compile(r"^s3://([^/]+)/(.+)$")


@dataclass
class BatchStatus:
    period: ComptablePeriod
    progress: int


@dataclass
class ExportDownload:
    """A signed link to the Excel export the ETL produced for a period."""

    url: str
    file_name: str
    mime_type: str = EXPORT_MIME_TYPE


def compute_progress(period: ComptablePeriod) -> int:
    """Percentage of the period's files whose processing is completed, rounded half up."""
    total = len(period.files)
    if total == 0:
        return 0
    completed = sum(1 for f in period.files if f.processing_status == ProcessingStatus.COMPLETED)
    return math.floor(completed * 100 / total + 0.5)


class ComptablePeriodService:
    """
    Service exposing comptable periods to their company.

    Args:
        storage: Object storage holding the period files
    """

    def __init__(self, storage: S3StorageService) -> None:
        self._storage = storage

    def get_batch_status(self, db: Session, user: User, batch_id: str) -> BatchStatus:
        """
        Get the processing status of an upload batch.

        Raises:
            PeriodNotFoundError: Unknown batch id
            PermissionDeniedError: Batch of another company
        """
        period = db.scalar(
            select(ComptablePeriod)
            .where(ComptablePeriod.batch_id == batch_id)
            .options(selectinload(ComptablePeriod.files), selectinload(ComptablePeriod.client))
        )
        if period is None:
            raise PeriodNotFoundError(batch_id)
        self._check_company(period, user)

        return BatchStatus(period=period, progress=compute_progress(period))

    def list_periods(self, db: Session, user: User, client_id: str | None = None) -> list[ComptablePeriod]:
        """List the company's periods, newest first, optionally for one client."""
        query = (
            select(ComptablePeriod)
            .join(Client, ComptablePeriod.client_id == Client.id)
            .where(Client.company_id == user.company_id)
            .order_by(ComptablePeriod.created_at.desc())
        )
        if client_id:
            query = query.where(ComptablePeriod.client_id == client_id)

        return list(db.scalars(query))

    def get_export_download(self, db: Session, user: User, period_id: str) -> ExportDownload:
        """
        Sign a temporary download link for the period's Excel export.

        The ETL records the export as "s3://<bucket>/<key>"; the link is
        valid for DOWNLOAD_URL_EXPIRES_SECONDS.

        Raises:
            PeriodNotFoundError: Unknown period, or period of another company
            ExportNotAvailableError: No export yet, or an unreadable location
            StorageError: The URL could not be signed
        """
        period = db.scalar(
            select(ComptablePeriod)
            .join(Client, ComptablePeriod.client_id == Client.id)
            .where(
                ComptablePeriod.id == period_id,
                Client.company_id == user.company_id,
            )
        )
        if period is None:
            raise PeriodNotFoundError(period_id)

        location = period.excel_file_url
        if not location or not location.startswith(EXPORT_URL_SCHEME):
            raise ExportNotAvailableError(period.id)

        match = _S3_URL.match(location)
        if match is None:
            raise ExportNotAvailableError(period.id, f"Invalid export location: {location}")
        bucket, key = match.group(1), match.group(2)

        url = self._storage.presigned_get_url(key, DOWNLOAD_URL_EXPIRES_SECONDS, bucket=bucket)
        file_name = key.rsplit("/", 1)[-1] or f"export-comptable-{period.id}.xlsx"

        logger.info(f"Signed export download for period {period.id}")
        return ExportDownload(url=url, file_name=file_name)

    def delete_period(self, db: Session, user: User, period_id: str) -> int:
        """
        Delete a period, its files and their stored objects.

        Storage errors are logged and do not prevent the database deletion.

        Returns:
            Number of file records deleted

        Raises:
            PeriodNotFoundError: Unknown period
            PermissionDeniedError: Period of another company
            PeriodLockedError: Period being validated or processed
        """
        period = db.scalar(
            select(ComptablePeriod)
            .where(ComptablePeriod.id == period_id)
            .options(selectinload(ComptablePeriod.files), selectinload(ComptablePeriod.client))
        )
        if period is None:
            raise PeriodNotFoundError(period_id)
        self._check_company(period, user)

        if period.status in LOCKED_STATUSES:
            raise PeriodLockedError(period.id, period.status.value)

        client = period.client
        prefix = paths.period_prefix(
            client.company.name,
            client.company_id,
            client.name,
            client.id,
            period.period_start,
            period.period_end,
        )
        self._delete_objects(prefix)

        deleted_files = len(period.files)
        db.delete(period)
        db.commit()

        logger.info(f"Deleted comptable period {period_id} ({deleted_files} files)")
        return deleted_files

    def _delete_objects(self, prefix: str) -> None:
        try:
            for key in self._storage.list_keys(prefix):
                self._storage.delete_object(key)
        except StorageError as e:
            logger.error(f"Failed to delete stored files under {prefix}: {e}")

    @staticmethod
    def _check_company(period: ComptablePeriod, user: User) -> None:
        if period.client.company_id != user.company_id:
            raise PermissionDeniedError("ComptablePeriod", period.id)
