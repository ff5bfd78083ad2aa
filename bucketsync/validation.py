"""Validation utilities for verifying a destination after sync.

This module re-lists the destination once transfers are done and checks
that every source file arrived with the same content digest.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .storage import StorageBackend
from .sync.endpoint import Endpoint
from .sync.scanner import DirectoryScanner, EntrySet
from .utils import is_multipart_etag


@dataclass
class VerificationResult:
    """Outcome of checking a destination against the source listing."""

    verified: list[str] = field(default_factory=list)
    """Keys whose destination digest matches the source"""

    size_only: list[str] = field(default_factory=list)
    """Keys matched by size because one side has a multipart entity tag"""

    missing: list[str] = field(default_factory=list)
    """Source keys absent from the destination"""

    mismatched: list[str] = field(default_factory=list)
    """Keys present on both sides with different content"""

    @property
    def is_valid(self) -> bool:
        return not self.missing and not self.mismatched

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.is_valid,
            "verified": len(self.verified) + len(self.size_only),
            "missing": sorted(self.missing),
            "mismatched": sorted(self.mismatched),
        }


def verify_destination(
    destination: Endpoint,
    source_entries: EntrySet,
    backend: Optional[StorageBackend] = None,
    scanner: Optional[DirectoryScanner] = None,
) -> VerificationResult:
    """Check that the destination holds every source file.

    Multipart entity tags are not MD5 digests, so when either side carries
    one the files are compared by size instead.

    Args:
        destination: Destination endpoint
        source_entries: Source listing the sync was planned from
        backend: Storage backend (required for a remote destination)
        scanner: Scanner to list with (a new one if None)

    Returns:
        VerificationResult
    """
    scanner = scanner or DirectoryScanner()
    destination_entries = scanner.scan(destination, backend, missing_ok=True)
    result = VerificationResult()

    for key in sorted(source_entries):
        entry = source_entries[key]
        other = destination_entries.get(key)
        if other is None:
            result.missing.append(key)
        elif other.content_digest == entry.content_digest:
            result.verified.append(key)
        elif other.size == entry.size and (
            is_multipart_etag(other.content_digest)
            or is_multipart_etag(entry.content_digest)
        ):
            result.size_only.append(key)
        else:
            result.mismatched.append(key)

    return result
