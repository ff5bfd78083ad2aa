"""Storage backends for remote endpoints.

The sync pipeline only talks to the :class:`StorageBackend` interface, so the
object-storage implementation can be replaced by a fake in tests.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import DEFAULT_PROFILE
from .exceptions import ConnectivityError, DeleteError, ListingError, TransferError

logger = logging.getLogger(__name__)

# Objects requested per listing page
DEFAULT_PAGE_SIZE: int = 1000


@dataclass(frozen=True)
class ObjectInfo:
    """One object returned by a bucket listing."""

    key: str
    """Full object key"""

    size: int
    """Object size in bytes"""

    etag: str
    """Entity tag as returned by the provider (may include quotes)"""


class StorageBackend(ABC):
    """Operations the sync pipeline needs from an object store."""

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str) -> Iterator[ObjectInfo]:
        """Yield every object under ``prefix``, across all pages."""

    @abstractmethod
    def get_object(self, bucket: str, key: str, writer: BinaryIO) -> None:
        """Write the object's bytes to ``writer``."""

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        content_type: str,
        acl: str,
    ) -> None:
        """Store the bytes read from ``reader`` as a new object."""

    @abstractmethod
    def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
        content_type: str,
        acl: str,
    ) -> None:
        """Copy an object server-side."""

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object."""

    def check_connectivity(self, bucket: str) -> None:
        """Verify the bucket can be reached with the configured credentials.

        Raises:
            ConnectivityError: If the check fails
        """


class S3Backend(StorageBackend):
    """Object storage backend using boto3."""

    def __init__(
        self,
        client: Any = None,
        profile: Optional[str] = None,
        region: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        max_attempts: int = 5,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """Initialize the backend.

        Args:
            client: Existing boto3 S3 client (created from profile/region if None)
            profile: Credentials profile name
            region: Region name
            connect_timeout: Connection timeout in seconds
            read_timeout: Read timeout in seconds
            max_attempts: Retry attempts for throttled or failed calls
            page_size: Objects requested per listing page

        Raises:
            ConnectivityError: If the session cannot be created
        """
        self.page_size = page_size
        if client is not None:
            self.client = client
            return

        boto_config = BotoConfig(
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        )
        try:
            session = boto3.Session(profile_name=profile, region_name=region)
            self.client = session.client("s3", config=boto_config)
        except BotoCoreError as e:
            raise ConnectivityError(f"Could not create storage session: {e}") from e

    def list_objects(self, bucket: str, prefix: str) -> Iterator[ObjectInfo]:
        """Yield every object under ``prefix``.

        The listing paginator is exhausted, so the result is never limited to
        the first page.

        Raises:
            ListingError: If any page cannot be fetched
        """
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=bucket,
                Prefix=prefix,
                PaginationConfig={"PageSize": self.page_size},
            )
            for page_num, page in enumerate(pages, start=1):
                contents = page.get("Contents", []) or []
                logger.debug(
                    "Listing page %d of %s/%s: %d object(s)",
                    page_num,
                    bucket,
                    prefix,
                    len(contents),
                )
                for obj in contents:
                    yield ObjectInfo(
                        key=obj["Key"],
                        size=int(obj.get("Size", 0) or 0),
                        etag=obj.get("ETag", ""),
                    )
        except (BotoCoreError, ClientError) as e:
            raise ListingError(f"Failed to list {bucket}/{prefix}: {e}") from e

    def get_object(self, bucket: str, key: str, writer: BinaryIO) -> None:
        try:
            self.client.download_fileobj(bucket, key, writer)
        except (BotoCoreError, ClientError) as e:
            raise TransferError(f"Download of {bucket}/{key} failed: {e}", key) from e

    def put_object(
        self,
        bucket: str,
        key: str,
        reader: BinaryIO,
        content_type: str,
        acl: str,
    ) -> None:
        extra = {"ContentType": content_type, "ACL": acl}
        try:
            self.client.upload_fileobj(reader, bucket, key, ExtraArgs=extra)
        except (BotoCoreError, ClientError) as e:
            raise TransferError(f"Upload to {bucket}/{key} failed: {e}", key) from e

    def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
        content_type: str,
        acl: str,
    ) -> None:
        copy_source = {"Bucket": source_bucket, "Key": source_key}
        # ContentType is only applied when metadata is replaced
        extra = {
            "ContentType": content_type,
            "ACL": acl,
            "MetadataDirective": "REPLACE",
        }
        try:
            self.client.copy(copy_source, dest_bucket, dest_key, ExtraArgs=extra)
        except (BotoCoreError, ClientError) as e:
            raise TransferError(
                f"Copy of {source_bucket}/{source_key} to "
                f"{dest_bucket}/{dest_key} failed: {e}",
                dest_key,
            ) from e

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise DeleteError(f"Delete of {bucket}/{key} failed: {e}", key) from e

    def check_connectivity(self, bucket: str) -> None:
        try:
            self.client.head_bucket(Bucket=bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("403", "AccessDenied"):
                raise ConnectivityError(
                    f"Access to bucket '{bucket}' denied - check your credentials"
                ) from e
            if code in ("404", "NoSuchBucket", "NotFound"):
                raise ConnectivityError(f"Bucket '{bucket}' does not exist") from e
            raise ConnectivityError(f"Could not reach bucket '{bucket}': {e}") from e
        except BotoCoreError as e:
            raise ConnectivityError(f"Could not reach bucket '{bucket}': {e}") from e


def create_backend(
    profile: Optional[str] = None, region: Optional[str] = None
) -> S3Backend:
    """Create the default object storage backend.

    The "default" profile is left to boto3's credential chain so that
    environment credentials work without a shared config file.

    Args:
        profile: Credentials profile name
        region: Region name

    Returns:
        S3Backend instance
    """
    if profile == DEFAULT_PROFILE:
        profile = None
    return S3Backend(profile=profile or None, region=region)
