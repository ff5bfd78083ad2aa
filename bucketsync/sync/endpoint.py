"""Resolution of source and destination location strings."""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from ..exceptions import InvalidLocationError

logger = logging.getLogger(__name__)

REMOTE_SCHEME = "remote"

# Schemes that denote an object storage location; "s3" is kept as an alias
REMOTE_SCHEMES = (REMOTE_SCHEME, "s3")


class EndpointKind(str, Enum):
    """Where an endpoint lives."""

    LOCAL = "local"
    """A directory on the local filesystem"""

    REMOTE = "remote"
    """A bucket and prefix in object storage"""


@dataclass(frozen=True)
class Endpoint:
    """A resolved source or destination location."""

    kind: EndpointKind
    """Local directory or remote bucket"""

    root: str
    """Absolute directory (local) or key prefix without slashes (remote)"""

    bucket: str = ""
    """Bucket name (remote only)"""

    parent: str = ""
    """Parent directory of the root (local only)"""

    raw: str = ""
    """Location string as given by the user"""

    @property
    def is_local(self) -> bool:
        return self.kind == EndpointKind.LOCAL

    @property
    def is_remote(self) -> bool:
        return self.kind == EndpointKind.REMOTE

    def locator(self, key: str, root: Optional[str] = None) -> str:
        """Join a root with an entry key.

        Args:
            key: Entry key using forward slashes
            root: Root to join onto (defaults to this endpoint's root)

        Returns:
            Filesystem path for local endpoints, object key for remote ones
        """
        base = self.root if root is None else root
        if self.is_local:
            return os.path.join(base, *key.split("/"))
        base = base.strip("/")
        return f"{base}/{key}" if base else key

    def describe(self, locator: Optional[str] = None) -> str:
        """Human-readable form of a locator on this endpoint.

        Args:
            locator: Path or object key (defaults to the root)

        Returns:
            The path for local endpoints, remote://bucket/key for remote ones
        """
        if locator is None:
            locator = self.root
        if self.is_local:
            return locator
        return f"{REMOTE_SCHEME}://{self.bucket}/{locator}"


def resolve_endpoint(raw: str) -> Endpoint:
    """Classify a location string as a local path or a remote bucket/prefix.

    Args:
        raw: Location string, e.g. "remote://bucket/photos" or "./photos"

    Returns:
        Resolved Endpoint

    Raises:
        InvalidLocationError: If the string cannot be parsed

    Examples:
        >>> resolve_endpoint("remote://media/photos/2024").root
        'photos/2024'
        >>> resolve_endpoint("/srv/photos/").root
        '/srv/photos'
    """
    if not raw or not raw.strip():
        raise InvalidLocationError(raw, "location is empty")

    try:
        parts = urlsplit(raw)
    except ValueError as e:
        raise InvalidLocationError(raw, str(e)) from e

    if parts.scheme.lower() in REMOTE_SCHEMES:
        bucket = parts.netloc
        if not bucket:
            raise InvalidLocationError(raw, "no bucket given")
        endpoint = Endpoint(
            kind=EndpointKind.REMOTE,
            root=parts.path.strip("/"),
            bucket=bucket,
            raw=raw,
        )
    else:
        root = os.path.abspath(os.path.expanduser(raw))
        endpoint = Endpoint(
            kind=EndpointKind.LOCAL,
            root=root,
            parent=os.path.dirname(root),
            raw=raw,
        )

    logger.debug("Resolved %r to %s", raw, endpoint)
    return endpoint
