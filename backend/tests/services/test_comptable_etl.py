# tests/services/test_comptable_etl.py
"""
Tests for ComptableEtlService and the Airflow client.

Airflow is answered by an httpx MockTransport (see AirflowStub in conftest);
the database is in-memory SQLite.
"""

import base64
import json
from datetime import datetime

import httpx
import pytest
from sqlalchemy import select

from repfi.config import settings
from repfi.models import ComptableFileHistory, ProcessingStatus
from repfi.services.comptable import AirflowClient, ComptableEtlService, build_airflow_client
from repfi.services.exceptions import (
    EtlTriggerError,
    IncompleteBatchError,
    PeriodNotFoundError,
    PeriodStateConflictError,
    PermissionDeniedError,
)

from conftest import create_client, create_period

PENDING = ProcessingStatus.PENDING
DAG_RUN_ID = "manual__2024-06-01T10:00:00"


def pending_batch(db, client, user, file_count=4, start=datetime(2024, 1, 1), end=datetime(2024, 12, 31),
                  status=PENDING):
    return create_period(
        db, client, start, end,
        status=status,
        file_statuses=[PENDING] * file_count,
        uploaded_by=user,
    )


# =============================================================================
# TRIGGER
# =============================================================================

class TestTrigger:

    def test_marks_period_and_files_processing(self, db, user, client_record, etl_service):
        period = pending_batch(db, client_record, user)

        result = etl_service.trigger(db, user, period.batch_id)

        assert result.dag_run_id == DAG_RUN_ID
        assert result.period.status == ProcessingStatus.PROCESSING
        assert all(f.processing_status == ProcessingStatus.PROCESSING for f in result.period.files)

    def test_returns_period_prefix(self, db, user, company, client_record, etl_service):
        period = pending_batch(db, client_record, user)

        result = etl_service.trigger(db, user, period.batch_id)

        assert result.s3_prefix == (
            f"Cabinet_Dupont_{company.id}/Boulangerie_Martin_{client_record.id}/"
            f"declaration/2024/periode-20240101-20241231/"
        )

    def test_starts_dag_run(self, db, user, client_record, etl_service, airflow_stub):
        period = pending_batch(db, client_record, user)

        result = etl_service.trigger(db, user, period.batch_id)

        assert len(airflow_stub.requests) == 1
        request = airflow_stub.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://airflow.test/api/v1/dags/etl_comptable_clickhouse/dagRuns"
        assert json.loads(request.content) == {
            "conf": {
                "client_id": client_record.id,
                "batch_id": period.batch_id,
                "s3_prefix": result.s3_prefix,
            },
        }
        expected_auth = base64.b64encode(b"etl:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"

    def test_writes_history(self, db, user, client_record, etl_service):
        period = pending_batch(db, client_record, user)

        etl_service.trigger(db, user, period.batch_id)

        history = list(db.scalars(select(ComptableFileHistory)))
        assert len(history) == 4
        assert all(h.action == "ETL_TRIGGERED" for h in history)
        assert all(h.details == f"DAG Run: {DAG_RUN_ID}" for h in history)
        assert all(h.user_email == user.email for h in history)

    def test_failed_period_can_be_triggered_again(self, db, user, client_record, etl_service):
        period = pending_batch(db, client_record, user, status=ProcessingStatus.FAILED)

        result = etl_service.trigger(db, user, period.batch_id)

        assert result.period.status == ProcessingStatus.PROCESSING

    def test_unknown_batch(self, db, user, etl_service, airflow_stub):
        with pytest.raises(PeriodNotFoundError):
            etl_service.trigger(db, user, "5b0f1c1e-0000-4000-8000-000000000000")

        assert airflow_stub.requests == []

    def test_batch_of_another_company(self, db, user, client_record, other_user, etl_service, airflow_stub):
        period = pending_batch(db, client_record, user)

        with pytest.raises(PermissionDeniedError):
            etl_service.trigger(db, other_user, period.batch_id)

        assert airflow_stub.requests == []

    @pytest.mark.parametrize("status,message", [
        (ProcessingStatus.PROCESSING, "already being processed"),
        (ProcessingStatus.VALIDATING, "already being processed"),
        (ProcessingStatus.COMPLETED, "already been processed"),
    ])
    def test_period_not_startable(self, db, user, client_record, etl_service, airflow_stub, status, message):
        period = pending_batch(db, client_record, user, status=status)

        with pytest.raises(PeriodStateConflictError, match=message) as exc_info:
            etl_service.trigger(db, user, period.batch_id)

        assert exc_info.value.status == status.value
        assert airflow_stub.requests == []

    def test_overlapping_period_being_processed(self, db, user, client_record, etl_service, airflow_stub):
        create_period(
            db, client_record, datetime(2024, 6, 1), datetime(2025, 5, 31),
            status=ProcessingStatus.PROCESSING,
        )
        period = pending_batch(db, client_record, user)

        with pytest.raises(PeriodStateConflictError, match="overlapping"):
            etl_service.trigger(db, user, period.batch_id)

        assert airflow_stub.requests == []

    def test_processing_period_of_other_client_does_not_block(self, db, user, company, client_record, etl_service):
        other_client = create_client(db, company, name="Garage Petit")
        create_period(
            db, other_client, datetime(2024, 1, 1), datetime(2024, 12, 31),
            status=ProcessingStatus.PROCESSING,
        )
        period = pending_batch(db, client_record, user)

        result = etl_service.trigger(db, user, period.batch_id)

        assert result.period.status == ProcessingStatus.PROCESSING

    def test_incomplete_batch(self, db, user, client_record, etl_service, airflow_stub):
        period = pending_batch(db, client_record, user, file_count=3)

        with pytest.raises(IncompleteBatchError, match="Invalid files: 3/4"):
            etl_service.trigger(db, user, period.batch_id)

        assert airflow_stub.requests == []

    def test_orchestrator_not_configured(self, db, user, client_record):
        period = pending_batch(db, client_record, user)

        with pytest.raises(EtlTriggerError, match="not configured"):
            ComptableEtlService(airflow=None).trigger(db, user, period.batch_id)

        db.refresh(period)
        assert period.status == PENDING

    def test_rejected_run_leaves_period_unchanged(self, db, user, client_record, etl_service, airflow_stub):
        airflow_stub.response = httpx.Response(409, json={"detail": "DAGRun already exists"})
        period = pending_batch(db, client_record, user)

        with pytest.raises(EtlTriggerError) as exc_info:
            etl_service.trigger(db, user, period.batch_id)

        assert exc_info.value.reason == "Airflow: DAGRun already exists"
        db.refresh(period)
        assert period.status == PENDING
        assert all(f.processing_status == PENDING for f in period.files)
        assert db.scalar(select(ComptableFileHistory.id)) is None


# =============================================================================
# AIRFLOW CLIENT
# =============================================================================

class TestAirflowClient:

    def test_returns_dag_run_id(self, airflow_client):
        assert airflow_client.trigger_dag_run("batch-1", {"batch_id": "batch-1"}) == DAG_RUN_ID

    def test_response_without_run_id(self, airflow_client, airflow_stub):
        airflow_stub.response = httpx.Response(200, json={"state": "queued"})

        with pytest.raises(EtlTriggerError, match="no dag_run_id"):
            airflow_client.trigger_dag_run("batch-1", {})

    def test_error_without_json_body(self, airflow_client, airflow_stub):
        airflow_stub.response = httpx.Response(503, text="upstream down")

        with pytest.raises(EtlTriggerError) as exc_info:
            airflow_client.trigger_dag_run("batch-1", {})

        assert exc_info.value.reason == "Airflow: Service Unavailable"

    def test_connection_error_is_retried(self, airflow_client, airflow_stub):
        airflow_stub.error = httpx.ConnectError("connection refused")

        with pytest.raises(EtlTriggerError, match="Network error"):
            airflow_client.trigger_dag_run("batch-1", {})

        assert len(airflow_stub.requests) == AirflowClient.MAX_RETRY_ATTEMPTS

    def test_read_timeout_is_not_retried(self, airflow_client, airflow_stub):
        """The run may have started; a second POST could start it twice."""
        airflow_stub.error = httpx.ReadTimeout("timed out")

        with pytest.raises(EtlTriggerError):
            airflow_client.trigger_dag_run("batch-1", {})

        assert len(airflow_stub.requests) == 1


class TestBuildAirflowClient:

    def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "airflow_api_url", None)

        assert build_airflow_client() is None

    def test_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "airflow_api_url", "http://airflow:8080")
        monkeypatch.setattr(settings, "airflow_username", "etl")
        monkeypatch.setattr(settings, "airflow_password", "secret")

        client = build_airflow_client()

        try:
            assert isinstance(client, AirflowClient)
            assert client.dag_id == "etl_comptable_clickhouse"
        finally:
            client.close()


# =============================================================================
# IN-PROGRESS LISTING
# =============================================================================

class TestListInProgress:

    def test_only_unfinished_periods_newest_first(self, db, user, client_record, etl_service):
        pending = create_period(
            db, client_record, datetime(2021, 1, 1), datetime(2021, 12, 31),
            status=PENDING, created_at=datetime(2024, 1, 1),
        )
        processing = create_period(
            db, client_record, datetime(2022, 1, 1), datetime(2022, 12, 31),
            status=ProcessingStatus.PROCESSING, created_at=datetime(2024, 3, 1),
        )
        validating = create_period(
            db, client_record, datetime(2023, 1, 1), datetime(2023, 12, 31),
            status=ProcessingStatus.VALIDATING, created_at=datetime(2024, 2, 1),
        )
        create_period(db, client_record, datetime(2019, 1, 1), datetime(2019, 12, 31))
        create_period(
            db, client_record, datetime(2020, 1, 1), datetime(2020, 12, 31),
            status=ProcessingStatus.FAILED,
        )

        periods = etl_service.list_in_progress(db, user)

        assert [p.id for p in periods] == [processing.id, validating.id, pending.id]
        assert periods[0].client.name == "Boulangerie Martin"

    def test_filter_by_client(self, db, user, company, client_record, etl_service):
        other_client = create_client(db, company, name="Garage Petit")
        mine = create_period(db, client_record, status=PENDING)
        create_period(db, other_client, status=PENDING)

        periods = etl_service.list_in_progress(db, user, client_id=client_record.id)

        assert [p.id for p in periods] == [mine.id]

    def test_other_company_periods_hidden(self, db, user, other_company, etl_service):
        foreign = create_client(db, other_company, name="Autre Client")
        create_period(db, foreign, status=PENDING)

        assert etl_service.list_in_progress(db, user) == []
