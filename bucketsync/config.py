"""Configuration for bucketsync runs."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_THREADS: int = 12
DEFAULT_ACL: str = "private"
DEFAULT_PROFILE: str = "default"

# Canned ACLs accepted by object storage for written objects
CANNED_ACLS = (
    "private",
    "public-read",
    "public-read-write",
    "authenticated-read",
    "aws-exec-read",
    "bucket-owner-read",
    "bucket-owner-full-control",
)


class Config:
    """Environment-backed defaults for bucketsync.

    Values are read lazily so tests can patch the environment.
    """

    @property
    def max_threads(self) -> int:
        """Default worker count (BUCKETSYNC_MAX_THREADS)."""
        value = os.environ.get("BUCKETSYNC_MAX_THREADS")
        if not value:
            return DEFAULT_MAX_THREADS
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Ignoring invalid BUCKETSYNC_MAX_THREADS=%r, using %d",
                value,
                DEFAULT_MAX_THREADS,
            )
            return DEFAULT_MAX_THREADS

    @property
    def acl(self) -> str:
        """Default ACL for written objects (BUCKETSYNC_ACL)."""
        return os.environ.get("BUCKETSYNC_ACL") or DEFAULT_ACL

    @property
    def profile(self) -> str:
        """Credentials profile (AWS_PROFILE)."""
        return os.environ.get("AWS_PROFILE") or DEFAULT_PROFILE

    @property
    def region(self) -> Optional[str]:
        """Region (AWS_REGION, then AWS_DEFAULT_REGION)."""
        return os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")


config = Config()


@dataclass
class SyncConfig:
    """Options for a single sync run.

    Produced by the CLI and consumed by the sync engine. ``profile`` and
    ``region`` are only used to build the storage backend.
    """

    source: str
    """Source location, a local path or remote://<bucket>/<path>"""

    destination: str
    """Destination location, a local path or remote://<bucket>/<path>"""

    max_threads: int = DEFAULT_MAX_THREADS
    """Maximum number of parallel workers per transfer batch"""

    delete: bool = False
    """Delete destination files that do not exist on the source"""

    dry_run: bool = False
    """Only report what would be done"""

    acl: str = DEFAULT_ACL
    """Canned ACL applied to every written remote object"""

    profile: str = DEFAULT_PROFILE
    """Credentials profile for the storage backend"""

    region: Optional[str] = None
    """Region for the storage backend"""

    verify: bool = False
    """Re-list the destination after syncing and check every file"""

    def validate(self) -> None:
        """Check the configuration before a run starts.

        Raises:
            ConfigurationError: If a required option is missing or invalid
        """
        if not self.source:
            raise ConfigurationError("The source option is required")
        if not self.destination:
            raise ConfigurationError("The destination option is required")
        if self.max_threads < 1:
            raise ConfigurationError("--max-threads cannot be less than 1")
        if self.acl not in CANNED_ACLS:
            raise ConfigurationError(
                f"Unknown ACL '{self.acl}'. Valid values: {', '.join(CANNED_ACLS)}"
            )
