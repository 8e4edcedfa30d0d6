# backend/repfi/dependencies.py
"""
Dependency injection for FastAPI routes.

Services are process-wide singletons, lazily created on first use so that
importing the app never builds an S3 client.

Usage in routers:
    from repfi.dependencies import get_current_user, get_upload_service

    @router.post("/upload")
    def upload(
        service: ComptableUploadService = Depends(get_upload_service),
        current_user: User = Depends(get_current_user),
    ):
        ...
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from repfi.database import get_db
from repfi.models import User
from repfi.services.auth.jwt_handler import JWTHandler
from repfi.services.comptable import (
    AirflowClient,
    ComptableEtlService,
    ComptablePeriodService,
    ComptableUploadService,
    build_airflow_client,
)
from repfi.services.exceptions import TokenExpiredError, InvalidCredentialsError
from repfi.services.storage import S3StorageService, build_storage_service

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# SINGLETON SERVICE INSTANCES
# =============================================================================
# Order matters: the comptable services share the storage singleton and
# the ETL service shares the Airflow client

@lru_cache(maxsize=1)
def get_storage_service() -> S3StorageService:
    """Get the singleton S3 storage service (one boto3 client per process)."""
    logger.debug("Initializing singleton S3StorageService")
    return build_storage_service()


@lru_cache(maxsize=1)
def get_upload_service() -> ComptableUploadService:
    logger.debug("Initializing singleton ComptableUploadService")
    return ComptableUploadService(storage=get_storage_service())


@lru_cache(maxsize=1)
def get_period_service() -> ComptablePeriodService:
    logger.debug("Initializing singleton ComptablePeriodService")
    return ComptablePeriodService(storage=get_storage_service())


@lru_cache(maxsize=1)
def get_airflow_client() -> AirflowClient | None:
    """Get the singleton Airflow client, None when Airflow is not configured."""
    return build_airflow_client()


@lru_cache(maxsize=1)
def get_etl_service() -> ComptableEtlService:
    logger.debug("Initializing singleton ComptableEtlService")
    return ComptableEtlService(airflow=get_airflow_client())


# =============================================================================
# AUTHENTICATION DEPENDENCIES
# =============================================================================

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
    db: Annotated[Session, Depends(get_db)],
) -> User:
    """
    Dependency that extracts and validates the current user from the JWT.

    Raises:
        HTTPException 401: No token, invalid or expired token,
            unknown or inactive user
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = JWTHandler.validate_access_token(credentials.credentials)
    except TokenExpiredError:
        raise _unauthorized("Token has expired")
    except InvalidCredentialsError as e:
        raise _unauthorized(str(e))

    user = db.get(User, payload["sub"])
    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("User account is inactive")

    return user


# =============================================================================
# CACHE MANAGEMENT
# =============================================================================

def clear_service_caches() -> None:
    """Drop the service singletons; the next call builds new instances."""
    get_storage_service.cache_clear()
    get_upload_service.cache_clear()
    get_period_service.cache_clear()
    get_airflow_client.cache_clear()
    get_etl_service.cache_clear()
    logger.info("Cleared all service singleton caches")
