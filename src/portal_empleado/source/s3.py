"""
portal_empleado.source.s3
~~~~~~~~~~~~~~~~~~~~~~~~~
boto3 transport for AWS S3 and S3-compatible stores (MinIO, Ceph).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import ConfigurationError, ObjectStoreError
from .transport import MISSING, MetadataResult, ObjectMetadata, ObjectResult, StoredObject

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_MISSING_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def _is_missing(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(error.get("Code", "")) in _MISSING_CODES or status == 404


class S3ObjectStore:
    """Read-only S3 access for one bucket."""

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        """
        Args:
            bucket:       Bucket name.
            region:       AWS region (boto3 default resolution when empty).
            endpoint_url: Custom endpoint for MinIO / S3-compatible storage.
            client:       Pre-built boto3 S3 client (tests, shared sessions).
        """
        if not bucket or not bucket.strip():
            raise ConfigurationError("S3 object store needs a bucket name")
        self._bucket = bucket.strip()

        if client is None:
            kwargs: dict = {}
            if region:
                kwargs["region_name"] = region
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            client = boto3.client("s3", **kwargs)
        self._s3 = client

    @property
    def bucket(self) -> str:
        return self._bucket

    def describe(self) -> str:
        return f"s3://{self._bucket}"

    def head(self, key: str) -> MetadataResult:
        try:
            response = self._s3.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return MISSING
            raise ObjectStoreError(f"head_object failed for s3://{self._bucket}/{key}", key=key, cause=exc) from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"head_object failed for s3://{self._bucket}/{key}", key=key, cause=exc) from exc

        return ObjectMetadata(
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
        )

    def get(self, key: str) -> ObjectResult:
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
            body = response["Body"].read()
        except ClientError as exc:
            if _is_missing(exc):
                return MISSING
            raise ObjectStoreError(f"get_object failed for s3://{self._bucket}/{key}", key=key, cause=exc) from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"get_object failed for s3://{self._bucket}/{key}", key=key, cause=exc) from exc

        user_metadata = response.get("Metadata") or {}
        logger.debug("S3 read: s3://%s/%s (%d bytes)", self._bucket, key, len(body))
        return StoredObject(
            body=body,
            etag=response.get("ETag"),
            version_id=response.get("VersionId"),
            metadata_etag=user_metadata.get("etag"),
        )
