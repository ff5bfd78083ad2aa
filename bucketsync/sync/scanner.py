"""Listing of local directories and remote prefixes for sync operations."""

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..exceptions import BrokenLinkError, ConfigurationError, ListingError
from ..storage import StorageBackend
from ..utils import file_digest, normalize_etag
from .endpoint import Endpoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Entry:
    """One synchronizable file on either side of a sync."""

    key: str
    """Path relative to the endpoint root, forward slashes, no leading slash"""

    size: int
    """File size in bytes"""

    content_digest: str
    """MD5 hex digest (local) or entity tag without quotes (remote)"""

    is_directory: bool = False
    """Always False for listed entries; directories are never synced"""

    path: str = ""
    """Full path or object key the entry was listed from"""


EntrySet = dict[str, Entry]


def derive_key(full_path: str, root: str) -> str:
    """Derive the comparison key of a file from its full path.

    The key is the path relative to the listing root with forward slashes.
    Local and remote listings use this same rule, so a file at
    ``/data/photos/a/b.jpg`` under root ``/data/photos`` and an object
    ``photos/a/b.jpg`` under prefix ``photos`` both get the key ``a/b.jpg``.

    Args:
        full_path: Absolute file path or full object key
        root: Listing root (directory path or key prefix)

    Returns:
        Relative key

    Raises:
        ValueError: If full_path is not below root

    Examples:
        >>> derive_key("/data/photos/a/b.jpg", "/data/photos")
        'a/b.jpg'
        >>> derive_key("photos/2024/a.jpg", "photos/2024")
        'a.jpg'
        >>> derive_key("a.jpg", "")
        'a.jpg'
    """
    if os.sep != "/":
        full_path = full_path.replace(os.sep, "/")
        root = root.replace(os.sep, "/")

    base = root.rstrip("/")
    if not base:
        key = full_path.lstrip("/")
    elif full_path.startswith(base + "/"):
        key = full_path[len(base) + 1 :].lstrip("/")
    else:
        raise ValueError(f"{full_path} is not below {root}")

    if not key:
        raise ValueError(f"{full_path} is the root itself")
    return key


class DirectoryScanner:
    """Builds the entry set of a local directory or remote prefix.

    Listing is all-or-nothing: any failure raises ListingError instead of
    returning a partial inventory.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> entries = scanner.scan(resolve_endpoint("/srv/photos"))  # doctest: +SKIP
        >>> entries = scanner.scan(
        ...     resolve_endpoint("remote://media/photos"), backend
        ... )  # doctest: +SKIP
    """

    def scan(
        self,
        endpoint: Endpoint,
        backend: Optional[StorageBackend] = None,
        missing_ok: bool = False,
    ) -> EntrySet:
        """List an endpoint of either kind.

        Args:
            endpoint: Endpoint to list
            backend: Storage backend (required for remote endpoints)
            missing_ok: Treat a missing local directory as empty

        Returns:
            Mapping of key to Entry

        Raises:
            ListingError: If the listing fails
            BrokenLinkError: If a local symlink target is missing
            ConfigurationError: If a remote endpoint has no backend
        """
        if endpoint.is_local:
            return self.scan_local(endpoint, missing_ok=missing_ok)
        if backend is None:
            raise ConfigurationError(
                f"A storage backend is required to list {endpoint.describe()}"
            )
        return self.scan_remote(endpoint, backend)

    def scan_local(self, endpoint: Endpoint, missing_ok: bool = False) -> EntrySet:
        """Recursively list a local directory, hashing every file.

        Symbolic links to files are resolved and listed under the link's
        own key. Links to directories are not followed.

        Args:
            endpoint: Local endpoint
            missing_ok: Return an empty listing if the directory does not exist

        Returns:
            Mapping of key to Entry
        """
        root = Path(endpoint.root)
        if not root.exists():
            if missing_ok:
                logger.debug("Local directory %s does not exist yet", root)
                return {}
            raise ListingError(f"Local directory does not exist: {root}")
        if not root.is_dir():
            raise ListingError(f"Local path is not a directory: {root}")

        entries: EntrySet = {}
        self._scan_directory(root, endpoint.root, entries)
        logger.debug("Listed %d local file(s) under %s", len(entries), root)
        return entries

    def _scan_directory(self, directory: Path, root: str, entries: EntrySet) -> None:
        try:
            items = sorted(directory.iterdir())
        except OSError as e:
            raise ListingError(f"Cannot read directory {directory}: {e}") from e

        for item in items:
            if item.is_symlink():
                target = self._resolve_link(item)
                if target.is_dir():
                    logger.debug("Not following directory link: %s", item)
                    continue
            elif item.is_dir():
                self._scan_directory(item, root, entries)
                continue

            entry = self._local_entry(item, root)
            if entry is not None:
                entries[entry.key] = entry

    def _resolve_link(self, link: Path) -> Path:
        """Return the target of a symlink, failing if it does not exist."""
        try:
            target = os.readlink(link)
        except OSError as e:
            raise ListingError(f"Cannot read symlink {link}: {e}") from e

        resolved = link.parent / target
        if not resolved.exists():
            raise BrokenLinkError(str(link), target)
        return resolved

    def _local_entry(self, path: Path, root: str) -> Optional[Entry]:
        try:
            # stat() follows symlinks, so links report their target
            st = path.stat()
            if not stat.S_ISREG(st.st_mode):
                logger.debug("Skipping non-regular file: %s", path)
                return None
            if st.st_size == 0:
                logger.debug("Skipping empty file: %s", path)
                return None
            digest = file_digest(path)
        except OSError as e:
            raise ListingError(f"Cannot read {path}: {e}") from e

        return Entry(
            key=derive_key(str(path), root),
            size=st.st_size,
            content_digest=digest,
            path=str(path),
        )

    def scan_remote(self, endpoint: Endpoint, backend: StorageBackend) -> EntrySet:
        """List every object under a remote prefix.

        The entity tag is used as the content digest. For objects uploaded
        in multiple parts the tag is not an MD5 of the content, so such
        objects compare unequal to their local copy and are re-transferred.

        Args:
            endpoint: Remote endpoint
            backend: Storage backend to list with

        Returns:
            Mapping of key to Entry
        """
        prefix = f"{endpoint.root}/" if endpoint.root else ""
        entries: EntrySet = {}

        for obj in backend.list_objects(endpoint.bucket, prefix):
            # Folder placeholders and empty objects are not synced
            if obj.key.endswith("/") or obj.size == 0:
                continue
            key = derive_key(obj.key, endpoint.root)
            entries[key] = Entry(
                key=key,
                size=obj.size,
                content_digest=normalize_etag(obj.etag),
                path=obj.key,
            )

        logger.debug(
            "Listed %d remote object(s) under %s",
            len(entries),
            endpoint.describe(),
        )
        return entries
