# backend/repfi/services/comptable/upload.py
"""
Upload service for comptable (accounting) files.

This service orchestrates the complete upload flow of a billing period:
1. Check the four required files are present
2. Validate the form fields and the period bounds
3. Check the client, then the format of every file, then every size
4. Refuse periods overlapping an already processed one
5. Back up files already stored for the period
6. Store each file in S3 and record it in the database

It also replaces the files of an existing period (same batch, same prefix):
the current objects are removed except backups, the old file records are
deleted and the period goes back to PENDING.

Design Principles:
- No HTTP knowledge: raises domain exceptions
- Validation happens before any side effect
- One commit for the period, its files and their history

The storage write and the database insert are not transactional: a failure
while recording leaves already stored objects in the bucket. They are
backed up and overwritten by the next upload of the same period.

Usage:
    from repfi.services.comptable import ComptableUploadService, IncomingFile

    service = ComptableUploadService(storage=storage)
    result = service.upload_period(
        db=session,
        user=current_user,
        client_id="...",
        period_start="2024-01-01",
        period_end="2024-12-31",
        files={FileType.GRAND_LIVRE: IncomingFile(...), ...},
    )
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from repfi.config import settings
from repfi.models import (
    Client,
    Company,
    ComptableFile,
    ComptableFileHistory,
    ComptablePeriod,
    FileType,
    ProcessingStatus,
    User,
)
from repfi.schemas.comptable import ComptableUploadForm
from repfi.services.comptable import paths
from repfi.services.constants import (
    BACKUP_EXCLUDED_FOLDERS,
    BACKUP_LIST_MAX_KEYS,
    EXCEL_CONTENT_TYPES,
    FILE_TYPE_LABELS,
    HISTORY_ACTION_UPDATE,
    HISTORY_ACTION_UPLOAD,
    LOCKED_STATUSES,
    REPLACE_KEPT_FOLDERS,
    REQUIRED_FILE_TYPES,
    UPLOAD_SUCCESS_STATUS,
)
from repfi.services.exceptions import (
    ClientNotFoundError,
    CompanyNotFoundError,
    FileTooLargeError,
    InvalidFileTypeError,
    MissingFilesError,
    PeriodLockedError,
    PeriodNotFoundError,
    PeriodOverlapError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from repfi.services.storage import S3StorageService

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class IncomingFile:
    """
    An uploaded file, already read into memory.

    Attributes:
        filename: Name given by the browser
        content_type: MIME type given by the browser
        content: File bytes
    """

    filename: str
    content_type: str | None
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class UploadResult:
    """
    Result of a successful period upload.

    Attributes:
        period: The created period (status PENDING)
        files: Created file records, in required-type order
        s3_prefix: Key prefix holding the period's files
    """

    period: ComptablePeriod
    s3_prefix: str
    files: list[ComptableFile] = field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def parse_period_date(value: str) -> datetime:
    """
    Parse an ISO date or datetime sent by the frontend.

    Timezone-aware values are converted to UTC; the result is naive.

    Raises:
        ValueError: If the value is not an ISO date
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def required_files_description() -> list[tuple[str, str]]:
    return [(ft.value, FILE_TYPE_LABELS[ft]) for ft in REQUIRED_FILE_TYPES]


# =============================================================================
# UPLOAD SERVICE
# =============================================================================

class ComptableUploadService:
    """
    Service storing the files of a comptable period.

    Args:
        storage: Object storage the files are written to
        max_file_size: Maximum size of a single file in bytes
    """

    def __init__(self, storage: S3StorageService, max_file_size: int | None = None) -> None:
        self._storage = storage
        self._max_file_size = max_file_size or settings.max_upload_file_size_bytes


    def upload_period(
            self,
            db: Session,
            user: User,
            client_id: str | None,
            period_start: str | None,
            period_end: str | None,
            files: dict[FileType, IncomingFile | None],
    ) -> UploadResult:
        """
        Validate and store the files of a billing period.

        Raises:
            MissingFilesError: A required file is absent
            ValidationError: Invalid form fields or period bounds
            ClientNotFoundError: Client unknown or owned by another company
            InvalidFileTypeError: A file is not an Excel workbook
            FileTooLargeError: A file exceeds the size limit
            PeriodOverlapError: A completed period overlaps the new one
            CompanyNotFoundError: The client's company no longer exists
            StorageError: S3 rejected a write
        """
        present = self._check_required_files(files)
        form = self._validate_form(client_id, period_start, period_end)
        start, end = self._parse_bounds(form)

        client = db.scalar(
            select(Client).where(
                Client.id == form.client_id,
                Client.company_id == user.company_id,
            )
        )
        if client is None:
            raise ClientNotFoundError(form.client_id)

        self._check_formats(present)
        self._check_sizes(present)
        self._check_overlap(db, client.id, start, end)

        company = self._get_company(db, client)
        prefix = paths.period_prefix(company.name, company.id, client.name, client.id, start, end)
        logger.info(
            f"Uploading comptable period for client {client.id}: "
            f"{start.date()} -> {end.date()} ({len(present)} files)"
        )

        self._backup_existing(prefix)

        try:
            period = ComptablePeriod(
                client_id=client.id,
                period_start=start,
                period_end=end,
                year=start.year,
                batch_id=str(uuid.uuid4()),
                status=ProcessingStatus.PENDING,
            )
            db.add(period)
            db.flush()

            result = UploadResult(period=period, s3_prefix=prefix)
            result.files = self._store_files(
                db, user, client, period, prefix, present, HISTORY_ACTION_UPLOAD, "uploaded",
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        self._refresh(db, result)
        logger.info(f"Comptable period {result.period.id} uploaded (batch {result.period.batch_id})")
        return result

    def replace_period_files(
            self,
            db: Session,
            user: User,
            period_id: str | None,
            files: dict[FileType, IncomingFile | None],
    ) -> UploadResult:
        """
        Replace the four files of an existing period.

        The period keeps its id, bounds and batch id. Objects stored under
        its prefix are removed (backups excepted), its file records are
        replaced and it goes back to PENDING with its ETL results cleared.

        Raises:
            ValidationError: No period id
            MissingFilesError: A required file is absent
            PeriodNotFoundError: Unknown period
            PermissionDeniedError: Period of another company
            PeriodLockedError: Period being validated or processed
            InvalidFileTypeError: A file is not an Excel workbook
            FileTooLargeError: A file exceeds the size limit
            CompanyNotFoundError: The client's company no longer exists
            StorageError: S3 rejected a write
        """
        if not period_id:
            raise ValidationError("Missing periodId", field="periodId")
        present = self._check_required_files(files)

        period = db.scalar(
            select(ComptablePeriod)
            .where(ComptablePeriod.id == period_id)
            .options(selectinload(ComptablePeriod.files), selectinload(ComptablePeriod.client))
        )
        if period is None:
            raise PeriodNotFoundError(period_id)
        client = period.client
        if client.company_id != user.company_id:
            raise PermissionDeniedError("ComptablePeriod", period.id)
        if period.status in LOCKED_STATUSES:
            raise PeriodLockedError(period.id, period.status.value, action="update")

        self._check_formats(present)
        self._check_sizes(present)

        company = self._get_company(db, client)
        prefix = paths.period_prefix(
            company.name, company.id, client.name, client.id, period.period_start, period.period_end,
        )
        logger.info(f"Replacing files of comptable period {period.id} under {prefix}")

        self._remove_current_objects(prefix)

        try:
            period.files.clear()
            db.flush()

            result = UploadResult(period=period, s3_prefix=prefix)
            result.files = self._store_files(
                db, user, client, period, prefix, present, HISTORY_ACTION_UPDATE, "updated",
            )

            period.status = ProcessingStatus.PENDING
            period.progress = 0
            period.error_message = None
            period.excel_file_url = None
            period.processed_at = None
            db.commit()
        except Exception:
            db.rollback()
            raise

        self._refresh(db, result)
        logger.info(f"Comptable period {period.id} files replaced (batch {period.batch_id})")
        return result

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _check_required_files(
            self,
            files: dict[FileType, IncomingFile | None],
    ) -> list[tuple[FileType, IncomingFile]]:
        present: list[tuple[FileType, IncomingFile]] = []
        missing: list[str] = []

        for file_type in REQUIRED_FILE_TYPES:
            incoming = files.get(file_type)
            if incoming is None:
                missing.append(FILE_TYPE_LABELS[file_type])
            else:
                present.append((file_type, incoming))

        if missing:
            raise MissingFilesError(missing, required_files_description())

        return present

    def _validate_form(
            self,
            client_id: str | None,
            period_start: str | None,
            period_end: str | None,
    ) -> ComptableUploadForm:
        try:
            return ComptableUploadForm(
                client_id=client_id,
                period_start=period_start,
                period_end=period_end,
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_name = ".".join(str(loc) for loc in first["loc"])
            raise ValidationError(f"Invalid data: {first['msg']}", field=field_name) from e

    def _parse_bounds(self, form: ComptableUploadForm) -> tuple[datetime, datetime]:
        start = self._parse_bound(form.period_start, "periodStart")
        end = self._parse_bound(form.period_end, "periodEnd")

        if start >= end:
            raise ValidationError("The start date must be before the end date", field="periodEnd")

        return start, end

    @staticmethod
    def _parse_bound(value: str, field_name: str) -> datetime:
        try:
            return parse_period_date(value)
        except ValueError as e:
            raise ValidationError("Invalid dates", field=field_name) from e

    def _check_formats(self, present: list[tuple[FileType, IncomingFile]]) -> None:
        for file_type, incoming in present:
            if incoming.content_type not in EXCEL_CONTENT_TYPES:
                raise InvalidFileTypeError(
                    FILE_TYPE_LABELS[file_type],
                    incoming.filename,
                    incoming.content_type,
                )

    def _check_sizes(self, present: list[tuple[FileType, IncomingFile]]) -> None:
        for _, incoming in present:
            if incoming.size > self._max_file_size:
                raise FileTooLargeError(incoming.filename, incoming.size, self._max_file_size)

    def _check_overlap(self, db: Session, client_id: str, start: datetime, end: datetime) -> None:
        overlapping = db.scalar(
            select(ComptablePeriod).where(
                ComptablePeriod.client_id == client_id,
                ComptablePeriod.status == ProcessingStatus.COMPLETED,
                ComptablePeriod.period_start <= end,
                ComptablePeriod.period_end >= start,
            ).limit(1)
        )
        if overlapping is not None:
            logger.warning(
                f"Period {start.date()} -> {end.date()} overlaps completed period {overlapping.id}"
            )
            raise PeriodOverlapError(overlapping.period_start, overlapping.period_end)

    @staticmethod
    def _get_company(db: Session, client: Client) -> Company:
        company = db.get(Company, client.company_id)
        if company is None:
            raise CompanyNotFoundError(client.company_id)
        return company

    # =========================================================================
    # STORAGE
    # =========================================================================

    def _backup_existing(self, prefix: str) -> None:
        """
        Copy files already stored for the period into a timestamped backup.

        Backup failures are logged and never abort the upload.
        """
        try:
            keys = self._storage.list_keys(prefix, max_keys=BACKUP_LIST_MAX_KEYS)
            if not keys:
                return

            destination = paths.backup_prefix(prefix, datetime.now(timezone.utc))
            for key in keys:
                if any(folder in key for folder in BACKUP_EXCLUDED_FOLDERS):
                    continue
                self._storage.copy_object(key, f"{destination}{key.rsplit('/', 1)[-1]}")

            logger.info(f"Backed up existing files of {prefix} to {destination}")
        except StorageError as e:
            logger.error(f"Backup of {prefix} failed: {e}")

    def _remove_current_objects(self, prefix: str) -> int:
        """
        Delete the objects of a period, keeping its backups.

        Failures are logged; the new files overwrite the same keys anyway.
        """
        deleted = 0
        try:
            for key in self._storage.list_keys(prefix):
                if any(folder in key for folder in REPLACE_KEPT_FOLDERS):
                    continue
                self._storage.delete_object(key)
                deleted += 1
        except StorageError as e:
            logger.error(f"Cleanup of {prefix} failed after {deleted} deletions: {e}")

        logger.info(f"Removed {deleted} stored objects under {prefix}")
        return deleted

    def _store_files(
            self,
            db: Session,
            user: User,
            client: Client,
            period: ComptablePeriod,
            prefix: str,
            present: list[tuple[FileType, IncomingFile]],
            action: str,
            verb: str,
    ) -> list[ComptableFile]:
        """Put each file in S3 and record it with one history entry."""
        start, end = period.period_start, period.period_end
        now = datetime.now(timezone.utc)
        records: list[ComptableFile] = []

        for file_type, incoming in present:
            file_name = paths.comptable_file_name(file_type, client.name, end, incoming.filename)
            key = f"{prefix}{file_type.value}/{file_name}"

            self._storage.put_object(key, incoming.content, incoming.content_type or "")

            record = ComptableFile(
                file_name=file_name,
                file_type=file_type,
                file_year=start.year,
                s3_key=key,
                s3_url=self._storage.object_url(key),
                file_size=incoming.size,
                mime_type=incoming.content_type or "",
                status=UPLOAD_SUCCESS_STATUS,
                processing_status=ProcessingStatus.PENDING,
                batch_id=period.batch_id,
                period_start=start,
                period_end=end,
                client_id=client.id,
                period_id=period.id,
                uploaded_by_id=user.id,
                processed_at=now,
            )
            db.add(record)
            db.flush()

            db.add(ComptableFileHistory(
                file_id=record.id,
                file_name=file_name,
                action=action,
                details=(
                    f"Comptable file {verb} ({FILE_TYPE_LABELS[file_type]}) - "
                    f"Period: {paths.format_yyyymmdd(start)} to {paths.format_yyyymmdd(end)}"
                ),
                user_id=user.id,
                user_email=user.email or "",
            ))
            records.append(record)

        return records

    @staticmethod
    def _refresh(db: Session, result: UploadResult) -> None:
        for record in result.files:
            db.refresh(record)
        db.refresh(result.period)
