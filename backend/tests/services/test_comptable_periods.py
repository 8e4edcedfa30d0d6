# tests/services/test_comptable_periods.py
"""
Tests for ComptablePeriodService: batch status, listing, export download
and deletion.
"""

from datetime import datetime

import pytest
from botocore.exceptions import ClientError
from sqlalchemy import func, select

from repfi.models import ComptableFile, ComptablePeriod, ProcessingStatus
from repfi.services.comptable import compute_progress
from repfi.services.exceptions import (
    ExportNotAvailableError,
    PeriodLockedError,
    PeriodNotFoundError,
    PermissionDeniedError,
    StorageError,
)

from conftest import create_client, create_period

DONE = ProcessingStatus.COMPLETED
WAITING = ProcessingStatus.PENDING


# =============================================================================
# PROGRESS
# =============================================================================

class TestComputeProgress:

    def test_no_files(self, db, client_record):
        period = create_period(db, client_record)

        assert compute_progress(period) == 0

    @pytest.mark.parametrize("statuses,expected", [
        ([WAITING, WAITING, WAITING, WAITING], 0),
        ([DONE, WAITING, WAITING, WAITING], 25),
        ([DONE, DONE, WAITING], 67),
        ([DONE, WAITING, WAITING], 33),
        ([DONE, DONE, DONE, DONE], 100),
    ])
    def test_rounded_percentage(self, db, user, client_record, statuses, expected):
        period = create_period(db, client_record, file_statuses=statuses, uploaded_by=user)

        assert compute_progress(period) == expected

    def test_half_rounds_up(self, db, user, client_record):
        statuses = [DONE] + [WAITING] * 7  # 12.5%
        period = create_period(db, client_record, file_statuses=statuses, uploaded_by=user)

        assert compute_progress(period) == 13


# =============================================================================
# BATCH STATUS
# =============================================================================

class TestGetBatchStatus:

    def test_returns_period_and_progress(self, db, user, client_record, period_service):
        period = create_period(db, client_record, status=ProcessingStatus.PROCESSING,
                               file_statuses=[DONE, WAITING], uploaded_by=user)

        status = period_service.get_batch_status(db, user, period.batch_id)

        assert status.period.id == period.id
        assert status.progress == 50
        assert len(status.period.files) == 2

    def test_unknown_batch(self, db, user, period_service):
        with pytest.raises(PeriodNotFoundError):
            period_service.get_batch_status(db, user, "unknown-batch")

    def test_batch_of_another_company(self, db, client_record, other_user, period_service):
        period = create_period(db, client_record)

        with pytest.raises(PermissionDeniedError):
            period_service.get_batch_status(db, other_user, period.batch_id)


# =============================================================================
# LISTING
# =============================================================================

class TestListPeriods:

    def test_newest_first(self, db, user, client_record, period_service):
        older = create_period(db, client_record, datetime(2022, 1, 1), datetime(2022, 12, 31),
                              created_at=datetime(2024, 1, 1, 9, 0))
        newer = create_period(db, client_record, datetime(2023, 1, 1), datetime(2023, 12, 31),
                              created_at=datetime(2024, 6, 1, 9, 0))

        periods = period_service.list_periods(db, user)

        assert [p.id for p in periods] == [newer.id, older.id]

    def test_filter_by_client(self, db, user, company, client_record, period_service):
        other_client = create_client(db, company, name="Garage Petit")
        mine = create_period(db, client_record)
        create_period(db, other_client)

        periods = period_service.list_periods(db, user, client_id=client_record.id)

        assert [p.id for p in periods] == [mine.id]

    def test_other_company_periods_hidden(self, db, user, other_company, period_service):
        foreign_client = create_client(db, other_company, name="Autre Client")
        create_period(db, foreign_client)

        assert period_service.list_periods(db, user) == []


# =============================================================================
# EXPORT DOWNLOAD
# =============================================================================

EXPORT_URL = "s3://etl-exports/Cabinet_Dupont/2023/export_comptable_2023.xlsx"


class TestGetExportDownload:

    def test_signs_export_location(self, db, user, client_record, period_service, s3_client):
        period = create_period(db, client_record, excel_file_url=EXPORT_URL)
        s3_client.generate_presigned_url.return_value = "https://signed.example/export"

        download = period_service.get_export_download(db, user, period.id)

        assert download.url == "https://signed.example/export"
        assert download.file_name == "export_comptable_2023.xlsx"
        assert download.mime_type == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        s3_client.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={"Bucket": "etl-exports", "Key": "Cabinet_Dupont/2023/export_comptable_2023.xlsx"},
            ExpiresIn=3600,
        )

    def test_no_export_yet(self, db, user, client_record, period_service, s3_client):
        period = create_period(db, client_record, status=ProcessingStatus.PENDING)

        with pytest.raises(ExportNotAvailableError):
            period_service.get_export_download(db, user, period.id)

        s3_client.generate_presigned_url.assert_not_called()

    @pytest.mark.parametrize("location", [
        "https://etl-exports.s3.amazonaws.com/export.xlsx",
        "s3://etl-exports",
        "s3://etl-exports/",
    ])
    def test_unreadable_location(self, db, user, client_record, period_service, location):
        period = create_period(db, client_record, excel_file_url=location)

        with pytest.raises(ExportNotAvailableError):
            period_service.get_export_download(db, user, period.id)

    def test_period_of_another_company_is_not_found(self, db, client_record, other_user, period_service):
        period = create_period(db, client_record, excel_file_url=EXPORT_URL)

        with pytest.raises(PeriodNotFoundError):
            period_service.get_export_download(db, other_user, period.id)

    def test_unknown_period(self, db, user, period_service):
        with pytest.raises(PeriodNotFoundError):
            period_service.get_export_download(db, user, "missing")

    def test_signing_failure(self, db, user, client_record, period_service, s3_client):
        period = create_period(db, client_record, excel_file_url=EXPORT_URL)
        s3_client.generate_presigned_url.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
            "GetObject",
        )

        with pytest.raises(StorageError):
            period_service.get_export_download(db, user, period.id)


# =============================================================================
# DELETION
# =============================================================================

class TestDeletePeriod:

    def test_deletes_period_files_and_objects(self, db, user, company, client_record, period_service, s3_client):
        period = create_period(db, client_record, file_statuses=[DONE, DONE], uploaded_by=user)
        prefix = (
            f"Cabinet_Dupont_{company.id}/Boulangerie_Martin_{client_record.id}/"
            f"declaration/2023/periode-20230101-20231231/"
        )
        s3_client.list_objects_v2.return_value = {
            "Contents": [{"Key": f"{prefix}GRAND_LIVRE/a.xlsx"}, {"Key": f"{prefix}PLAN_TIERS/b.xlsx"}],
        }

        deleted = period_service.delete_period(db, user, period.id)

        assert deleted == 2
        s3_client.list_objects_v2.assert_called_once_with(Bucket="test-bucket", Prefix=prefix)
        assert s3_client.delete_object.call_count == 2
        assert db.scalar(select(func.count(ComptablePeriod.id))) == 0
        assert db.scalar(select(func.count(ComptableFile.id))) == 0

    @pytest.mark.parametrize("status", [ProcessingStatus.PROCESSING, ProcessingStatus.VALIDATING])
    def test_locked_period(self, db, user, client_record, period_service, status):
        period = create_period(db, client_record, status=status)

        with pytest.raises(PeriodLockedError):
            period_service.delete_period(db, user, period.id)

        assert db.get(ComptablePeriod, period.id) is not None

    @pytest.mark.parametrize("status", [ProcessingStatus.PENDING, ProcessingStatus.FAILED])
    def test_unlocked_statuses(self, db, user, client_record, period_service, status):
        period = create_period(db, client_record, status=status)

        assert period_service.delete_period(db, user, period.id) == 0

    def test_storage_failure_does_not_block_deletion(self, db, user, client_record, period_service, s3_client):
        period = create_period(db, client_record)
        s3_client.list_objects_v2.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied"}, "ResponseMetadata": {"HTTPStatusCode": 403}},
            "ListObjectsV2",
        )

        period_service.delete_period(db, user, period.id)

        assert db.scalar(select(func.count(ComptablePeriod.id))) == 0

    def test_unknown_period(self, db, user, period_service):
        with pytest.raises(PeriodNotFoundError):
            period_service.delete_period(db, user, "missing")

    def test_period_of_another_company(self, db, client_record, other_user, period_service):
        period = create_period(db, client_record)

        with pytest.raises(PermissionDeniedError):
            period_service.delete_period(db, other_user, period.id)
