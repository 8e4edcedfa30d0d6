# backend/repfi/services/comptable/etl.py
"""
Hand-over of uploaded comptable batches to the ETL.

Uploaded periods wait in PENDING until a user triggers their processing.
Triggering starts one run of the Airflow DAG for the batch, then marks the
period and its files PROCESSING. From there the ETL advances the statuses
polled through /files/comptable/status/{batch_id}.

A batch can be triggered when:
- it belongs to the caller's company
- its period is not already validating, processing or completed
- no overlapping period of the same client is being processed
- it holds one file per required type

Airflow is called through its stable REST API with basic authentication:

    POST {AIRFLOW_API_URL}/api/v1/dags/{dag_id}/dagRuns
    {"conf": {"client_id": ..., "batch_id": ..., "s3_prefix": ...}}
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from repfi.config import settings
from repfi.models import Client, Company, ComptableFileHistory, ComptablePeriod, ProcessingStatus, User
from repfi.services.comptable import paths
from repfi.services.constants import (
    HISTORY_ACTION_ETL_TRIGGERED,
    IN_PROGRESS_STATUSES,
    LOCKED_STATUSES,
    REQUIRED_FILE_TYPES,
)
from repfi.services.exceptions import (
    CompanyNotFoundError,
    EtlTriggerError,
    IncompleteBatchError,
    PeriodNotFoundError,
    PeriodStateConflictError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# AIRFLOW CLIENT
# =============================================================================

class AirflowClient:
    """
    Minimal client of the Airflow REST API.

    Only connection failures are retried: the request never reached Airflow,
    so retrying cannot start the DAG twice.

    Args:
        base_url: Airflow webserver URL
        username: Basic auth user
        password: Basic auth password
        dag_id: DAG started for each batch
        timeout: Request timeout in seconds
        transport: httpx transport (injected for testing)
    """

    MAX_RETRY_ATTEMPTS: int = 3
    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 8
    RETRY_MULTIPLIER: int = 1

    def __init__(
            self,
            base_url: str,
            username: str,
            password: str,
            dag_id: str,
            timeout: float = 30.0,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.dag_id = dag_id
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(username, password),
            timeout=timeout,
            transport=transport,
        )

    def trigger_dag_run(self, batch_id: str, conf: dict[str, Any]) -> str:
        """
        Start a DAG run and return its dag_run_id.

        Raises:
            EtlTriggerError: Network failure, error response or no run id
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _post() -> httpx.Response:
            return self._http.post(f"/api/v1/dags/{self.dag_id}/dagRuns", json={"conf": conf})

        try:
            response = _post()
        except httpx.RequestError as e:
            logger.error(f"Airflow unreachable for batch {batch_id}: {e}")
            raise EtlTriggerError(batch_id, f"Network error: {e}") from e

        if response.is_error:
            detail = _error_detail(response)
            logger.error(f"Airflow rejected batch {batch_id} ({response.status_code}): {detail}")
            raise EtlTriggerError(batch_id, f"Airflow: {detail}")

        dag_run_id = response.json().get("dag_run_id")
        if not dag_run_id:
            raise EtlTriggerError(batch_id, "Airflow response has no dag_run_id")

        logger.info(f"Started DAG run {dag_run_id} of {self.dag_id} for batch {batch_id}")
        return dag_run_id

    def close(self) -> None:
        self._http.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


def build_airflow_client() -> AirflowClient | None:
    """Create the Airflow client from settings, or None when not configured."""
    if not settings.is_airflow_configured:
        logger.warning("Airflow is not configured; ETL triggers will fail")
        return None

    return AirflowClient(
        base_url=settings.airflow_api_url,
        username=settings.airflow_username,
        password=settings.airflow_password,
        dag_id=settings.airflow_dag_id,
        timeout=settings.airflow_timeout_seconds,
    )


# =============================================================================
# ETL SERVICE
# =============================================================================

@dataclass
class EtlTriggerResult:
    period: ComptablePeriod
    dag_run_id: str
    s3_prefix: str


class ComptableEtlService:
    """
    Service starting and listing ETL processing of comptable batches.

    Args:
        airflow: Airflow client; None when the orchestrator is not configured
    """

    def __init__(self, airflow: AirflowClient | None) -> None:
        self._airflow = airflow

    def trigger(self, db: Session, user: User, batch_id: str) -> EtlTriggerResult:
        """
        Start the ETL run of a batch and mark it PROCESSING.

        Airflow is called before anything is written, so a rejected run
        leaves the period unchanged.

        Raises:
            PeriodNotFoundError: Unknown batch id
            PermissionDeniedError: Batch of another company
            PeriodStateConflictError: Period already started or finished,
                or an overlapping period is being processed
            IncompleteBatchError: The batch does not hold one file per type
            CompanyNotFoundError: The client's company no longer exists
            EtlTriggerError: Airflow not configured or run not started
        """
        period = db.scalar(
            select(ComptablePeriod)
            .where(ComptablePeriod.batch_id == batch_id)
            .options(selectinload(ComptablePeriod.files), selectinload(ComptablePeriod.client))
        )
        if period is None:
            raise PeriodNotFoundError(batch_id)

        client = period.client
        if client.company_id != user.company_id:
            raise PermissionDeniedError("ComptablePeriod", period.id)

        self._check_startable(db, period)

        expected = len(REQUIRED_FILE_TYPES)
        if len(period.files) != expected:
            raise IncompleteBatchError(batch_id, len(period.files), expected)

        company = db.get(Company, client.company_id)
        if company is None:
            raise CompanyNotFoundError(client.company_id)

        prefix = paths.period_prefix(
            company.name, company.id, client.name, client.id, period.period_start, period.period_end,
        )

        if self._airflow is None:
            raise EtlTriggerError(batch_id, "ETL orchestrator is not configured")

        dag_run_id = self._airflow.trigger_dag_run(
            batch_id,
            {"client_id": client.id, "batch_id": batch_id, "s3_prefix": prefix},
        )

        try:
            period.status = ProcessingStatus.PROCESSING
            for record in period.files:
                record.processing_status = ProcessingStatus.PROCESSING
                db.add(ComptableFileHistory(
                    file_id=record.id,
                    file_name=record.file_name,
                    action=HISTORY_ACTION_ETL_TRIGGERED,
                    details=f"DAG Run: {dag_run_id}",
                    user_id=user.id,
                    user_email=user.email or "",
                ))
            db.commit()
        except Exception:
            db.rollback()
            logger.error(f"DAG run {dag_run_id} started but batch {batch_id} could not be marked PROCESSING")
            raise

        db.refresh(period)
        logger.info(f"Batch {batch_id} handed to the ETL (DAG run {dag_run_id})")
        return EtlTriggerResult(period=period, dag_run_id=dag_run_id, s3_prefix=prefix)

    def list_in_progress(self, db: Session, user: User, client_id: str | None = None) -> list[ComptablePeriod]:
        """List the company's periods not yet finished by the ETL, newest first."""
        query = (
            select(ComptablePeriod)
            .join(Client, ComptablePeriod.client_id == Client.id)
            .where(
                Client.company_id == user.company_id,
                ComptablePeriod.status.in_(IN_PROGRESS_STATUSES),
            )
            .options(selectinload(ComptablePeriod.client))
            .order_by(ComptablePeriod.created_at.desc())
        )
        if client_id:
            query = query.where(ComptablePeriod.client_id == client_id)

        return list(db.scalars(query))

    @staticmethod
    def _check_startable(db: Session, period: ComptablePeriod) -> None:
        if period.status in LOCKED_STATUSES:
            raise PeriodStateConflictError(
                period.id, period.status.value, "Period is already being processed",
            )
        if period.status == ProcessingStatus.COMPLETED:
            raise PeriodStateConflictError(
                period.id, period.status.value, "Period has already been processed",
            )

        overlapping = db.scalar(
            select(ComptablePeriod).where(
                ComptablePeriod.client_id == period.client_id,
                ComptablePeriod.status == ProcessingStatus.PROCESSING,
                ComptablePeriod.id != period.id,
                ComptablePeriod.period_start <= period.period_end,
                ComptablePeriod.period_end >= period.period_start,
            ).limit(1)
        )
        if overlapping is not None:
            raise PeriodStateConflictError(
                period.id, period.status.value, "An overlapping period is being processed",
            )
