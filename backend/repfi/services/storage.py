# backend/repfi/services/storage.py
"""
S3 object storage for comptable files.

Thin wrapper around a boto3 S3 client exposing the handful of operations the
comptable flows need (list, copy, put, delete, presign) with:
- Exponential backoff retry for transient failures (tenacity)
- Translation of botocore errors into StorageError
- Public URL construction for stored objects

Retryable failures:
    - EndpointConnectionError, ConnectionClosedError, ReadTimeoutError
    - ClientError with a throttling code or a 5xx status

Everything else (AccessDenied, NoSuchBucket, ...) fails immediately.
"""

import logging
from typing import Any, Callable, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_sleep_log,
)

from repfi.config import settings
from repfi.services.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_THROTTLING_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "RequestLimitExceeded",
    "TooManyRequestsException",
})


def _is_transient(exc: BaseException) -> bool:
    """Return True for storage failures worth retrying."""
    if isinstance(exc, (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)):
        return True
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        return error.get("Code") in _THROTTLING_CODES or status >= 500
    return False


def create_s3_client() -> Any:
    """
    Build a boto3 S3 client from settings.

    Credentials fall back to the default boto3 chain (instance profile,
    shared config) when the access key settings are not set.
    """
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.aws_s3_endpoint_url,
        # Retries are handled here, not by botocore
        config=Config(retries={"max_attempts": 1, "mode": "standard"}),
    )


class S3StorageService:
    """
    Object storage operations scoped to a single bucket.

    Args:
        client: boto3 S3 client (injected for testing)
        bucket: Bucket name
        region: Region used to build public object URLs
    """

    RETRY_MIN_WAIT: int = 1
    RETRY_MAX_WAIT: int = 8
    RETRY_MULTIPLIER: int = 1

    def __init__(
            self,
            client: Any,
            bucket: str,
            region: str,
            max_attempts: int = 3,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.region = region
        self.max_attempts = max_attempts

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def list_keys(self, prefix: str, max_keys: int | None = None) -> list[str]:
        """
        List object keys under a prefix (first page only).

        Args:
            prefix: Key prefix, usually ending with "/"
            max_keys: Page size; the S3 default (1000) when None
        """
        params: dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if max_keys is not None:
            params["MaxKeys"] = max_keys

        response = self._call("list", prefix, self._client.list_objects_v2, **params)
        return [obj["Key"] for obj in response.get("Contents", []) if obj.get("Key")]

    def copy_object(self, source_key: str, destination_key: str) -> None:
        """Copy an object within the bucket."""
        self._call(
            "copy",
            source_key,
            self._client.copy_object,
            Bucket=self.bucket,
            CopySource=f"{self.bucket}/{source_key}",
            Key=destination_key,
        )

    def put_object(self, key: str, body: bytes, content_type: str) -> None:
        """Store bytes under a key."""
        logger.debug(f"Putting {len(body)} bytes to s3://{self.bucket}/{key}")
        self._call(
            "put",
            key,
            self._client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )

    def delete_object(self, key: str) -> None:
        self._call("delete", key, self._client.delete_object, Bucket=self.bucket, Key=key)

    def presigned_get_url(self, key: str, expires_in: int, bucket: str | None = None) -> str:
        """
        Signed GET URL giving temporary read access to an object.

        Args:
            key: Object key
            expires_in: Validity of the URL in seconds
            bucket: Bucket holding the object; this service's bucket when None
        """
        return self._call(
            "presign",
            key,
            self._client.generate_presigned_url,
            ClientMethod="get_object",
            Params={"Bucket": bucket or self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def object_url(self, key: str) -> str:
        """Public virtual-hosted style URL of an object."""
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _call(self, operation: str, key: str, func: Callable[..., T], **kwargs: Any) -> T:
        """
        Invoke a boto3 method with retry, translating failures to StorageError.
        """

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(**kwargs)

        try:
            return _inner()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            logger.error(f"S3 {operation} failed for {key}: {code}")
            raise StorageError(operation, key, code) from e
        except BotoCoreError as e:
            logger.error(f"S3 {operation} failed for {key}: {e}")
            raise StorageError(operation, key, str(e)) from e


def build_storage_service() -> S3StorageService:
    """Create the storage service configured from environment settings."""
    return S3StorageService(
        client=create_s3_client(),
        bucket=settings.aws_s3_bucket_name or "",
        region=settings.aws_region,
        max_attempts=settings.s3_max_retry_attempts,
    )
