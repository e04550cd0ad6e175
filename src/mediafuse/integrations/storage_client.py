"""
S3 storage client for generated media.

Artifacts are addressed by locators of the form ``s3://bucket/key``. The
blocking boto3 calls are wrapped in ``asyncio.to_thread`` so that one
pipeline's transfers never stall the others sharing the event loop.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlparse

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from mediafuse.core.config import Settings, get_settings
from mediafuse.core.exceptions import ExternalServiceError, NotFoundError

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NoSuchBucket", "NotFound")

# Service errors plus the transport and transfer failures boto3 raises
STORAGE_ERRORS = (ClientError, BotoCoreError, S3UploadFailedError)


@dataclass(frozen=True)
class ObjectMetadata:
    """
    Metadata of a stored object.

    Attributes:
        locator: Locator of the object
        size_bytes: Object size in bytes
        content_type: MIME type, if known
        etag: Storage ETag, if known
    """

    locator: str
    size_bytes: int
    content_type: str | None = None
    etag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "locator": self.locator,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "etag": self.etag,
        }


class ObjectStorage(Protocol):
    """Object storage as seen by the pipeline."""

    async def put(self, locator: str, data: bytes, content_type: str | None = None) -> int: ...

    async def get(self, locator: str) -> bytes: ...

    async def head_metadata(self, locator: str) -> ObjectMetadata: ...

    async def download_to_path(self, locator: str, path: Path) -> int: ...

    async def upload_from_path(
        self, path: Path, locator: str, content_type: str | None = None
    ) -> int: ...


def build_locator(bucket: str, key: str) -> str:
    """Build an ``s3://`` locator."""
    return f"s3://{bucket}/{key.lstrip('/')}"


def parse_locator(locator: str, default_bucket: str | None = None) -> tuple[str, str]:
    """
    Split a locator into bucket and key.

    Accepts ``s3://bucket/key``, path-style S3 HTTPS URLs (as returned
    by Polly's OutputUri) and bare keys when a default bucket is given.

    Args:
        locator: Locator or URL to parse
        default_bucket: Bucket used for bare keys

    Returns:
        Tuple of (bucket, key)

    Raises:
        ValueError: If no bucket or key can be determined
    """
    parsed = urlparse(locator)

    if parsed.scheme == "s3":
        bucket, key = parsed.netloc, parsed.path.lstrip("/")
    elif parsed.scheme in ("http", "https"):
        host = parsed.netloc
        path = parsed.path.lstrip("/")
        if host.startswith("s3.") or host.startswith("s3-") or "." not in host:
            # Path-style: https://s3.region.amazonaws.com/bucket/key
            bucket, _, key = path.partition("/")
        else:
            # Virtual-hosted style: https://bucket.s3.region.amazonaws.com/key
            bucket, key = host.split(".", 1)[0], path
    elif not parsed.scheme and default_bucket:
        bucket, key = default_bucket, locator.lstrip("/")
    else:
        bucket, key = "", ""

    if not bucket or not key:
        raise ValueError(f"Invalid storage locator: {locator!r}")
    return bucket, key


class StorageClient:
    """
    S3 storage client for media artifacts.

    Provides operations for:
    - Uploading bytes and local files
    - Downloading content and files
    - Reading object metadata
    - Checking object existence

    Example:
        ```python
        storage = StorageClient()

        locator = storage.locator_for("videos/clip.mp4")
        await storage.put(locator, video_bytes, content_type="video/mp4")
        meta = await storage.head_metadata(locator)
        ```
    """

    SERVICE_NAME = "S3"

    def __init__(
        self,
        settings: Settings | None = None,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        client: Any | None = None,
    ) -> None:
        """
        Initialize the storage client.

        Args:
            settings: Application settings instance
            endpoint_url: S3 endpoint URL (overrides settings)
            access_key: S3 access key (overrides settings)
            secret_key: S3 secret key (overrides settings)
            region: AWS region (overrides settings)
            client: Preconfigured boto3 S3 client (used by tests)
        """
        self._settings = settings or get_settings()

        self._endpoint_url = endpoint_url or self._settings.s3_endpoint_url
        self._region = region or self._settings.aws_region

        self._client = client or boto3.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=access_key or self._settings.s3_access_key,
            aws_secret_access_key=secret_key or self._settings.s3_secret_key,
            region_name=self._region,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
        )

        logger.debug(
            "Storage client initialized",
            extra={"endpoint_url": self._endpoint_url, "region": self._region},
        )

    @property
    def default_bucket(self) -> str:
        """Get the default bucket for media."""
        return self._settings.media_bucket

    def locator_for(self, key: str, bucket: str | None = None) -> str:
        """Build a locator for a key in the default (or given) bucket."""
        return build_locator(bucket or self.default_bucket, key)

    def _split(self, locator: str) -> tuple[str, str]:
        return parse_locator(locator, default_bucket=self.default_bucket)

    def _guess_content_type(self, key: str) -> str:
        content_type, _ = mimetypes.guess_type(key)
        return content_type or "application/octet-stream"

    def _translate(self, e: Exception, bucket: str, key: str, action: str) -> Exception:
        if isinstance(e, ClientError):
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_msg = e.response.get("Error", {}).get("Message", str(e))
        else:
            error_code = type(e).__name__
            error_msg = str(e)

        if error_code in NOT_FOUND_CODES:
            logger.warning(
                "S3 object not found",
                extra={"bucket": bucket, "key": key, "action": action},
            )
            return NotFoundError(resource_type="S3Object", resource_id=f"{bucket}/{key}")

        logger.error(
            f"S3 {action} failed",
            extra={
                "bucket": bucket,
                "key": key,
                "error_code": error_code,
                "error": error_msg,
            },
        )
        return ExternalServiceError(
            service=self.SERVICE_NAME,
            message=f"Failed to {action} S3 object: {error_msg}",
            original_error=str(e),
        )

    # =========================================================================
    # Blocking operations
    # =========================================================================

    def upload_bytes(
        self,
        data: bytes,
        locator: str,
        content_type: str | None = None,
    ) -> int:
        """
        Upload bytes to S3.

        Args:
            data: Object content
            locator: Destination locator
            content_type: MIME type (auto-detected if not provided)

        Returns:
            Number of bytes written

        Raises:
            ExternalServiceError: If upload fails
        """
        bucket, key = self._split(locator)
        content_type = content_type or self._guess_content_type(key)

        logger.info(
            "Uploading object to S3",
            extra={
                "bucket": bucket,
                "key": key,
                "content_type": content_type,
                "size_bytes": len(data),
            },
        )
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
        except STORAGE_ERRORS as e:
            raise self._translate(e, bucket, key, "upload") from e
        return len(data)

    def upload_path(self, path: Path, locator: str, content_type: str | None = None) -> int:
        """Upload a local file to S3 and return its size."""
        bucket, key = self._split(locator)
        content_type = content_type or self._guess_content_type(key)
        size = Path(path).stat().st_size

        logger.info(
            "Uploading file to S3",
            extra={"bucket": bucket, "key": key, "size_bytes": size},
        )
        try:
            self._client.upload_file(
                str(path), bucket, key, ExtraArgs={"ContentType": content_type}
            )
        except STORAGE_ERRORS as e:
            raise self._translate(e, bucket, key, "upload") from e
        return size

    def download_bytes(self, locator: str) -> bytes:
        """
        Download object content from S3.

        Raises:
            NotFoundError: If object does not exist
            ExternalServiceError: If download fails
        """
        bucket, key = self._split(locator)
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            data = response["Body"].read()
        except STORAGE_ERRORS as e:
            raise self._translate(e, bucket, key, "download") from e

        logger.debug(
            "Object downloaded from S3",
            extra={"bucket": bucket, "key": key, "size_bytes": len(data)},
        )
        return data

    def download_path(self, locator: str, path: Path) -> int:
        """Download an object to a local file and return its size."""
        bucket, key = self._split(locator)
        try:
            self._client.download_file(bucket, key, str(path))
        except STORAGE_ERRORS as e:
            raise self._translate(e, bucket, key, "download") from e
        return Path(path).stat().st_size

    def get_file_info(self, locator: str) -> ObjectMetadata:
        """
        Get metadata about an object.

        Raises:
            NotFoundError: If object does not exist
        """
        bucket, key = self._split(locator)
        try:
            response = self._client.head_object(Bucket=bucket, Key=key)
        except STORAGE_ERRORS as e:
            raise self._translate(e, bucket, key, "inspect") from e

        return ObjectMetadata(
            locator=build_locator(bucket, key),
            size_bytes=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            etag=response.get("ETag", "").strip('"') or None,
        )

    def file_exists(self, locator: str) -> bool:
        """Check whether an object exists."""
        try:
            self.get_file_info(locator)
        except NotFoundError:
            return False
        return True

    # =========================================================================
    # Async port
    # =========================================================================

    async def put(self, locator: str, data: bytes, content_type: str | None = None) -> int:
        return await asyncio.to_thread(self.upload_bytes, data, locator, content_type)

    async def get(self, locator: str) -> bytes:
        return await asyncio.to_thread(self.download_bytes, locator)

    async def head_metadata(self, locator: str) -> ObjectMetadata:
        return await asyncio.to_thread(self.get_file_info, locator)

    async def download_to_path(self, locator: str, path: Path) -> int:
        return await asyncio.to_thread(self.download_path, locator, path)

    async def upload_from_path(
        self, path: Path, locator: str, content_type: str | None = None
    ) -> int:
        return await asyncio.to_thread(self.upload_path, path, locator, content_type)


def get_storage_client(settings: Settings | None = None) -> StorageClient:
    """Create a storage client from settings."""
    return StorageClient(settings=settings)
