"""bucketsync - mirror file trees between local directories and object storage."""

from .config import SyncConfig
from .exceptions import (
    BrokenLinkError,
    BucketSyncError,
    ConfigurationError,
    ConnectivityError,
    DeleteError,
    ExecutionError,
    InvalidLocationError,
    ListingError,
    TransferError,
    UnsupportedEndpointPairError,
)
from .storage import ObjectInfo, S3Backend, StorageBackend, create_backend
from .sync import SyncEngine

__all__ = [
    "SyncConfig",
    "SyncEngine",
    "StorageBackend",
    "S3Backend",
    "ObjectInfo",
    "create_backend",
    "BucketSyncError",
    "BrokenLinkError",
    "ConfigurationError",
    "ConnectivityError",
    "DeleteError",
    "ExecutionError",
    "InvalidLocationError",
    "ListingError",
    "TransferError",
    "UnsupportedEndpointPairError",
]
