"""Exceptions raised by bucketsync."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .sync.engine import ExecutionSummary


class BucketSyncError(Exception):
    """Base exception for all bucketsync errors."""


class ConfigurationError(BucketSyncError):
    """Missing or invalid run configuration."""


class InvalidLocationError(BucketSyncError):
    """A source or destination string could not be parsed."""

    def __init__(self, location: str, reason: str = "cannot be parsed"):
        self.location = location
        super().__init__(f"Invalid location '{location}': {reason}")


class ListingError(BucketSyncError):
    """Listing an endpoint failed; the inventory would be incomplete."""


class BrokenLinkError(ListingError):
    """A symbolic link points at a target that does not exist."""

    def __init__(self, path: str, target: str):
        self.path = path
        self.target = target
        super().__init__(
            f"The symlink {path} has a target {target} but the target does not exist"
        )


class UnsupportedEndpointPairError(BucketSyncError):
    """The source/destination kind combination cannot be synced."""

    def __init__(self, source_kind: str, destination_kind: str):
        self.source_kind = source_kind
        self.destination_kind = destination_kind
        super().__init__(
            f"Syncing from {source_kind} to {destination_kind} is not supported"
        )


class TransferError(BucketSyncError):
    """A single copy, download or upload failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class DeleteError(BucketSyncError):
    """A single delete failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


class ConnectivityError(BucketSyncError):
    """Credentials or the storage service could not be reached."""


class ExecutionError(BucketSyncError):
    """One or more plan items failed during execution."""

    def __init__(self, summary: "ExecutionSummary"):
        self.summary = summary
        failed = summary.total_failed
        super().__init__(f"{failed} action(s) failed during sync")
