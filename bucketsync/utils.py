"""Utility functions for bucketsync."""

import hashlib
import mimetypes
from pathlib import Path
from typing import Union

# =============================================================================
# Constants for file operations
# =============================================================================

# Read size used when hashing local files (8 MB)
DEFAULT_HASH_CHUNK_SIZE: int = 8 * 1024 * 1024

# Content type used when detection fails
DEFAULT_CONTENT_TYPE: str = "application/octet-stream"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Hash calculation utilities
# =============================================================================


def file_digest(
    path: Union[str, Path], chunk_size: int = DEFAULT_HASH_CHUNK_SIZE
) -> str:
    """Calculate the MD5 hex digest of a file's full contents.

    MD5 matches the entity tag object storage assigns to objects uploaded
    in a single part, so local and remote digests compare directly.

    Args:
        path: File to hash
        chunk_size: Number of bytes read per iteration

    Returns:
        Lowercase hex digest

    Raises:
        OSError: If the file cannot be read
    """
    hasher = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def normalize_etag(etag: str) -> str:
    """Strip the quote characters providers wrap entity tags in.

    Examples:
        >>> normalize_etag('"5d41402abc4b2a76b9719d911017c592"')
        '5d41402abc4b2a76b9719d911017c592'
        >>> normalize_etag("abc-2")
        'abc-2'
    """
    return etag.replace('"', "")


def is_multipart_etag(etag: str) -> bool:
    """Check whether an entity tag belongs to a multipart upload.

    Multipart tags have the form ``<md5-of-part-md5s>-<part count>`` and
    are not a hash of the object's content.

    Examples:
        >>> is_multipart_etag("d41d8cd98f00b204e9800998ecf8427e-3")
        True
        >>> is_multipart_etag("d41d8cd98f00b204e9800998ecf8427e")
        False
    """
    return "-" in etag


# =============================================================================
# Content type utilities
# =============================================================================


def detect_mime_type(name: Union[str, Path]) -> str:
    """Detect the MIME type of a file from its name.

    Args:
        name: File path or object key

    Returns:
        MIME type string (defaults to 'application/octet-stream' if detection fails)
    """
    mime_type, _ = mimetypes.guess_type(str(name))
    if not mime_type:
        mime_type = DEFAULT_CONTENT_TYPE
    return mime_type
