# backend/repfi/services/__init__.py
"""
Service layer for business logic.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions (see exceptions.py)
- Receive database sessions as parameters (not via Depends)

Architecture:
    services/
    ├── __init__.py          # This file - main exports
    ├── exceptions.py        # Domain exceptions
    ├── constants.py         # File types, storage layout, rate limits
    ├── storage.py           # S3 object storage (boto3 + tenacity)
    ├── auth/                # JWT verification
    └── comptable/           # Comptable uploads, periods and ETL hand-over
        ├── paths.py         # Object key layout
        ├── upload.py        # Upload and file replacement
        ├── periods.py       # Batch status, listing, export download, deletion
        └── etl.py           # Airflow DAG trigger (httpx + tenacity)
"""

from repfi.services.comptable import (
    ComptableEtlService,
    ComptablePeriodService,
    ComptableUploadService,
    IncomingFile,
)
from repfi.services.storage import S3StorageService, build_storage_service

__all__ = [
    "ComptableEtlService",
    "ComptablePeriodService",
    "ComptableUploadService",
    "IncomingFile",
    "S3StorageService",
    "build_storage_service",
]
