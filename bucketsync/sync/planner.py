"""Translation of a diff into a typed action plan."""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..exceptions import UnsupportedEndpointPairError
from .comparator import DiffResult
from .endpoint import Endpoint, EndpointKind

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    """Operations an action plan can contain."""

    COPY = "copy"
    """Server-side copy between remote locations"""

    DOWNLOAD = "download"
    """Remote object to local file"""

    UPLOAD = "upload"
    """Local file to remote object"""

    DELETE = "delete"
    """Remove a destination-only file or object"""


# Execution order of the batches
EXECUTION_ORDER = (
    ActionKind.COPY,
    ActionKind.DOWNLOAD,
    ActionKind.UPLOAD,
    ActionKind.DELETE,
)

TRANSFER_KINDS: dict[tuple[EndpointKind, EndpointKind], ActionKind] = {
    (EndpointKind.REMOTE, EndpointKind.REMOTE): ActionKind.COPY,
    (EndpointKind.REMOTE, EndpointKind.LOCAL): ActionKind.DOWNLOAD,
    (EndpointKind.LOCAL, EndpointKind.REMOTE): ActionKind.UPLOAD,
}


@dataclass(frozen=True)
class ActionItem:
    """A single planned operation."""

    kind: ActionKind
    """Operation to perform"""

    key: str
    """Entry key the action belongs to"""

    source_locator: str
    """Source path or object key (empty for deletes)"""

    destination_locator: str
    """Destination path or object key"""

    content_digest: str
    """Digest of the entry being transferred or deleted"""

    size: int
    """Size of the entry being transferred or deleted"""

    source_bucket: str = ""
    """Bucket of a remote source"""

    destination_bucket: str = ""
    """Bucket of a remote destination"""

    message: str = ""
    """Description reported in both dry-run and live runs"""

    @property
    def bucket(self) -> str:
        """Bucket a delete applies to (empty for local destinations)."""
        return self.destination_bucket


class ActionPlan(Mapping):
    """Read-only mapping of entry key to ActionItem.

    Transfers come first in key order, followed by deletes in key order.
    """

    def __init__(self, items: Optional[dict[str, ActionItem]] = None):
        self._items: dict[str, ActionItem] = dict(items or {})

    def __getitem__(self, key: str) -> ActionItem:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"ActionPlan({self.counts()})"

    def by_kind(self, kind: ActionKind) -> list[ActionItem]:
        """Items of one kind, in plan order."""
        return [item for item in self._items.values() if item.kind == kind]

    def partition(self) -> dict[ActionKind, list[ActionItem]]:
        """Items grouped by kind, in execution order."""
        return {kind: self.by_kind(kind) for kind in EXECUTION_ORDER}

    def messages(self) -> list[str]:
        """Messages of all items in execution order."""
        return [
            item.message for items in self.partition().values() for item in items
        ]

    def counts(self) -> dict[str, int]:
        """Number of items per kind."""
        return {kind.value: len(items) for kind, items in self.partition().items()}


class SyncPlanner:
    """Builds the action plan that makes the destination match the source."""

    def plan(
        self,
        diff: DiffResult,
        source: Endpoint,
        destination: Endpoint,
        source_root: Optional[str] = None,
        destination_root: Optional[str] = None,
        delete: bool = False,
    ) -> ActionPlan:
        """Plan transfers for changed files and, optionally, deletions.

        Args:
            diff: Comparison of source and destination listings
            source: Source endpoint
            destination: Destination endpoint
            source_root: Root to build source locators from (default: source.root)
            destination_root: Root to build destination locators from
                (default: destination.root)
            delete: Plan deletion of destination-only entries

        Returns:
            ActionPlan

        Raises:
            UnsupportedEndpointPairError: If both endpoints are local
        """
        transfer_kind = TRANSFER_KINDS.get((source.kind, destination.kind))
        if transfer_kind is None:
            raise UnsupportedEndpointPairError(
                source.kind.value, destination.kind.value
            )

        items: dict[str, ActionItem] = {}
        sync_needed = diff.sync_needed

        for key in sorted(sync_needed):
            entry = sync_needed[key]
            source_locator = source.locator(key, source_root)
            destination_locator = destination.locator(key, destination_root)
            items[key] = ActionItem(
                kind=transfer_kind,
                key=key,
                source_locator=source_locator,
                destination_locator=destination_locator,
                content_digest=entry.content_digest,
                size=entry.size,
                source_bucket=source.bucket,
                destination_bucket=destination.bucket,
                message=(
                    f"{transfer_kind.value}: {source.describe(source_locator)} "
                    f"to {destination.describe(destination_locator)}"
                ),
            )

        if delete:
            for key in sorted(diff.destination_only):
                entry = diff.destination_only[key]
                destination_locator = destination.locator(key, destination_root)
                items[key] = ActionItem(
                    kind=ActionKind.DELETE,
                    key=key,
                    source_locator="",
                    destination_locator=destination_locator,
                    content_digest=entry.content_digest,
                    size=entry.size,
                    destination_bucket=destination.bucket,
                    message=f"delete: {destination.describe(destination_locator)}",
                )

        plan = ActionPlan(items)
        logger.debug("Planned %s", plan.counts())
        return plan


def build_plan(
    diff: DiffResult,
    source: Endpoint,
    destination: Endpoint,
    source_root: Optional[str] = None,
    destination_root: Optional[str] = None,
    delete: bool = False,
) -> ActionPlan:
    """Build an action plan. See :meth:`SyncPlanner.plan`."""
    return SyncPlanner().plan(
        diff,
        source,
        destination,
        source_root=source_root,
        destination_root=destination_root,
        delete=delete,
    )
