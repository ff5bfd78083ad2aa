"""Content comparison of source and destination listings."""

from dataclasses import dataclass, field

from .scanner import Entry, EntrySet


@dataclass
class DiffResult:
    """Classification of every key of a source and destination listing.

    ``common``, ``source_only`` and ``source_mismatch`` partition the source
    keys; ``common``, ``destination_only`` and ``destination_mismatch``
    partition the destination keys. The two mismatch mappings always hold
    the same keys, one with the source entry and one with the destination
    entry.
    """

    common: dict[str, Entry] = field(default_factory=dict)
    """Keys on both sides with equal digests (source entries)"""

    source_only: dict[str, Entry] = field(default_factory=dict)
    """Keys only on the source side"""

    destination_only: dict[str, Entry] = field(default_factory=dict)
    """Keys only on the destination side"""

    source_mismatch: dict[str, Entry] = field(default_factory=dict)
    """Keys on both sides with differing digests (source entries)"""

    destination_mismatch: dict[str, Entry] = field(default_factory=dict)
    """Keys on both sides with differing digests (destination entries)"""

    @property
    def sync_needed(self) -> dict[str, Entry]:
        """Source entries that must be transferred."""
        return {**self.source_only, **self.source_mismatch}

    @property
    def is_in_sync(self) -> bool:
        """True when nothing needs transferring or deleting."""
        return not (self.source_only or self.source_mismatch or self.destination_only)

    def counts(self) -> dict[str, int]:
        """Number of keys in each category."""
        return {
            "common": len(self.common),
            "source_only": len(self.source_only),
            "destination_only": len(self.destination_only),
            "mismatched": len(self.source_mismatch),
        }


class FileComparator:
    """Compares two entry sets by content digest."""

    def compare(self, source: EntrySet, destination: EntrySet) -> DiffResult:
        """Classify every key of both listings.

        One pass over each side with dictionary lookups, so the result does
        not depend on iteration order.

        Args:
            source: Source entries by key
            destination: Destination entries by key

        Returns:
            DiffResult partitioning both key sets
        """
        result = DiffResult()

        for key, entry in source.items():
            other = destination.get(key)
            if other is None:
                result.source_only[key] = entry
            elif entry.content_digest == other.content_digest:
                result.common[key] = entry
            else:
                result.source_mismatch[key] = entry

        for key, entry in destination.items():
            other = source.get(key)
            if other is None:
                result.destination_only[key] = entry
            elif entry.content_digest == other.content_digest:
                # Already recorded from the source pass with an equal digest
                result.common[key] = other
            else:
                result.destination_mismatch[key] = entry

        return result


def diff_entries(source: EntrySet, destination: EntrySet) -> DiffResult:
    """Compare two entry sets. See :meth:`FileComparator.compare`."""
    return FileComparator().compare(source, destination)
