"""Sync operations wrapper for unified copy/download/upload/delete interface."""

import logging
import os
import tempfile
from pathlib import Path

from ..config import DEFAULT_ACL
from ..exceptions import DeleteError, TransferError
from ..storage import StorageBackend
from ..utils import detect_mime_type
from .planner import ActionItem, ActionKind

logger = logging.getLogger(__name__)


class SyncOperations:
    """Carries out single plan items against the storage backend."""

    def __init__(self, backend: StorageBackend, acl: str = DEFAULT_ACL):
        """Initialize sync operations.

        Args:
            backend: Storage backend for remote calls
            acl: Canned ACL applied to every written remote object
        """
        self.backend = backend
        self.acl = acl

    def perform(self, item: ActionItem) -> None:
        """Carry out one plan item.

        Args:
            item: Item to perform

        Raises:
            TransferError: If a copy, download or upload fails
            DeleteError: If a delete fails
        """
        if item.kind == ActionKind.COPY:
            self.copy(item)
        elif item.kind == ActionKind.DOWNLOAD:
            self.download(item)
        elif item.kind == ActionKind.UPLOAD:
            self.upload(item)
        elif item.kind == ActionKind.DELETE:
            self.delete(item)
        else:
            raise ValueError(f"Unknown action kind: {item.kind}")

    def copy(self, item: ActionItem) -> None:
        """Copy a remote object to another remote location."""
        self.backend.copy_object(
            item.source_bucket,
            item.source_locator,
            item.destination_bucket,
            item.destination_locator,
            detect_mime_type(item.destination_locator),
            self.acl,
        )

    def download(self, item: ActionItem) -> None:
        """Download a remote object to a local file.

        The object is written to a temporary file next to the destination
        and renamed into place, so a failed download never leaves a
        truncated file behind.
        """
        local_path = Path(item.destination_locator)
        try:
            # Ensure parent directory exists
            local_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{local_path.name}.", suffix=".part", dir=local_path.parent
            )
        except OSError as e:
            raise TransferError(
                f"Cannot prepare {local_path} for download: {e}", item.key
            ) from e

        try:
            with os.fdopen(fd, "wb") as writer:
                self.backend.get_object(item.source_bucket, item.source_locator, writer)
            os.replace(tmp_name, local_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise TransferError(f"Failed to write {local_path}: {e}", item.key) from e
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def upload(self, item: ActionItem) -> None:
        """Upload a local file to a remote object."""
        content_type = detect_mime_type(item.source_locator)
        try:
            with open(item.source_locator, "rb") as reader:
                self.backend.put_object(
                    item.destination_bucket,
                    item.destination_locator,
                    reader,
                    content_type,
                    self.acl,
                )
        except OSError as e:
            raise TransferError(
                f"Cannot read {item.source_locator}: {e}", item.key
            ) from e

    def delete(self, item: ActionItem) -> None:
        """Delete a destination file or object."""
        if item.bucket:
            self.backend.delete_object(item.bucket, item.destination_locator)
            return

        try:
            Path(item.destination_locator).unlink()
        except OSError as e:
            raise DeleteError(
                f"Cannot delete {item.destination_locator}: {e}", item.key
            ) from e
