# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- Mock S3 client and storage service
- Airflow answered through an httpx MockTransport
- Sample data factories (company, user, client, period)
- API client with dependency overrides
"""

import os
import uuid

# Must run before any repfi import: settings are read at import time
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("AWS_S3_BUCKET_NAME", "test-bucket")
os.environ.setdefault("AWS_REGION", "eu-west-3")

from datetime import datetime
from typing import Iterator
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from repfi.models import (
    Base,
    Client,
    Company,
    ComptableFile,
    ComptablePeriod,
    FileType,
    ProcessingStatus,
    User,
)
from repfi.services.auth.jwt_handler import JWTHandler
from repfi.services.comptable import (
    AirflowClient,
    ComptableEtlService,
    ComptablePeriodService,
    ComptableUploadService,
    IncomingFile,
)
from repfi.services.comptable.paths import sanitize_name
from repfi.services.storage import S3StorageService

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
XLS_CONTENT_TYPE = "application/vnd.ms-excel"


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def s3_client() -> MagicMock:
    """
    Mock boto3 S3 client.

    The bucket starts empty: list_objects_v2 returns no Contents.
    """
    client = MagicMock()
    client.list_objects_v2.return_value = {"KeyCount": 0}
    return client


@pytest.fixture
def storage(s3_client: MagicMock) -> S3StorageService:
    service = S3StorageService(client=s3_client, bucket="test-bucket", region="eu-west-3")
    service.RETRY_MIN_WAIT = 0
    service.RETRY_MAX_WAIT = 0
    return service


@pytest.fixture
def upload_service(storage: S3StorageService) -> ComptableUploadService:
    return ComptableUploadService(storage=storage, max_file_size=1024 * 1024)


@pytest.fixture
def period_service(storage: S3StorageService) -> ComptablePeriodService:
    return ComptablePeriodService(storage=storage)


# =============================================================================
# ETL FIXTURES
# =============================================================================

class AirflowStub:
    """
    Records the requests sent to Airflow and answers them.

    Set `response` to change the answer, or `error` to raise an httpx error.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(200, json={"dag_run_id": "manual__2024-06-01T10:00:00", "state": "queued"})
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def airflow_stub() -> AirflowStub:
    return AirflowStub()


@pytest.fixture
def airflow_client(airflow_stub: AirflowStub) -> Iterator[AirflowClient]:
    client = AirflowClient(
        base_url="http://airflow.test/",
        username="etl",
        password="secret",
        dag_id="etl_comptable_clickhouse",
        transport=httpx.MockTransport(airflow_stub),
    )
    client.RETRY_MIN_WAIT = 0
    client.RETRY_MAX_WAIT = 0
    yield client
    client.close()


@pytest.fixture
def etl_service(airflow_client: AirflowClient) -> ComptableEtlService:
    return ComptableEtlService(airflow=airflow_client)


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_company(db: Session, name: str = "Cabinet Dupont") -> Company:
    company = Company(name=name)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def create_user(
        db: Session,
        company: Company,
        email: str = "comptable@example.com",
        is_active: bool = True,
) -> User:
    user = User(email=email, name="Comptable", company_id=company.id, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_client(db: Session, company: Company, name: str = "Boulangerie Martin") -> Client:
    client = Client(name=name, company_id=company.id)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def create_period(
        db: Session,
        client: Client,
        start: datetime = datetime(2023, 1, 1),
        end: datetime = datetime(2023, 12, 31),
        status: ProcessingStatus = ProcessingStatus.COMPLETED,
        file_statuses: list[ProcessingStatus] | None = None,
        uploaded_by: User | None = None,
        created_at: datetime | None = None,
        excel_file_url: str | None = None,
) -> ComptablePeriod:
    """
    Create a period, optionally with one file per processing status.

    Files require an uploader; pass uploaded_by when file_statuses is set.
    """
    period = ComptablePeriod(
        client_id=client.id,
        period_start=start,
        period_end=end,
        year=start.year,
        batch_id=str(uuid.uuid4()),
        status=status,
        excel_file_url=excel_file_url,
    )
    if created_at is not None:
        period.created_at = created_at
    db.add(period)
    db.flush()

    file_types = list(FileType)
    for index, file_status in enumerate(file_statuses or []):
        file_type = file_types[index % len(file_types)]
        db.add(ComptableFile(
            file_name=f"{end:%Y%m%d}_{file_type.value}_{sanitize_name(client.name)}.xlsx",
            file_type=file_type,
            file_year=start.year,
            s3_key=f"some/prefix/{file_type.value}/{index}.xlsx",
            s3_url=f"https://test-bucket.s3.eu-west-3.amazonaws.com/{index}.xlsx",
            file_size=10,
            mime_type=XLSX_CONTENT_TYPE,
            processing_status=file_status,
            batch_id=period.batch_id,
            period_start=start,
            period_end=end,
            client_id=client.id,
            period_id=period.id,
            uploaded_by_id=uploaded_by.id,
        ))

    db.commit()
    db.refresh(period)
    return period


def make_incoming(filename: str = "export.xlsx", content_type: str | None = XLSX_CONTENT_TYPE,
                  content: bytes = b"PK\x03\x04fake-xlsx") -> IncomingFile:
    return IncomingFile(filename=filename, content_type=content_type, content=content)


def make_required_files(**overrides) -> dict[FileType, IncomingFile | None]:
    """One Excel file per required type; keyword overrides by file type name."""
    files: dict[FileType, IncomingFile | None] = {
        FileType.GRAND_LIVRE: make_incoming("grand_livre.xlsx"),
        FileType.PLAN_COMPTES: make_incoming("plan_comptes.xlsx"),
        FileType.PLAN_TIERS: make_incoming("plan_tiers.xls", XLS_CONTENT_TYPE),
        FileType.CODE_JOURNAL: make_incoming("journaux.xlsx"),
    }
    for name, value in overrides.items():
        files[FileType[name]] = value
    return files


def get_auth_headers(user: User) -> dict[str, str]:
    """Authorization header with a valid access token for the user."""
    token = JWTHandler.create_access_token(user_id=user.id, email=user.email)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def company(db: Session) -> Company:
    return create_company(db)


@pytest.fixture
def user(db: Session, company: Company) -> User:
    return create_user(db, company)


@pytest.fixture
def client_record(db: Session, company: Company) -> Client:
    return create_client(db, company)


@pytest.fixture
def other_company(db: Session) -> Company:
    return create_company(db, name="Cabinet Concurrent")


@pytest.fixture
def other_user(db: Session, other_company: Company) -> User:
    return create_user(db, other_company, email="autre@example.com")


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def api_client(
        db: Session,
        storage: S3StorageService,
        etl_service: ComptableEtlService,
) -> Iterator[TestClient]:
    """
    TestClient with the database, storage and ETL singletons overridden.

    Rate limit counters are reset so tests do not share a budget.
    """
    from repfi.database import get_db
    from repfi.dependencies import (
        get_etl_service,
        get_period_service,
        get_storage_service,
        get_upload_service,
    )
    from repfi.main import app
    from repfi.middleware import limiter

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: storage
    app.dependency_overrides[get_upload_service] = lambda: ComptableUploadService(storage=storage)
    app.dependency_overrides[get_period_service] = lambda: ComptablePeriodService(storage=storage)
    app.dependency_overrides[get_etl_service] = lambda: etl_service
    limiter.reset()

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
