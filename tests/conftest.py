"""Shared fixtures for bucketsync tests."""

import hashlib
import threading
from collections import defaultdict

import pytest

from bucketsync.exceptions import DeleteError, ListingError, TransferError
from bucketsync.output import OutputFormatter
from bucketsync.storage import ObjectInfo, StorageBackend


class FakeBackend(StorageBackend):
    """In-memory object store.

    Listing is served in pages of ``page_size`` objects. Keys in
    ``fail_keys`` make get/put/copy/delete of that key fail.
    """

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.objects: dict[str, dict[str, bytes]] = defaultdict(dict)
        self.etags: dict[tuple[str, str], str] = {}
        self.content_types: dict[tuple[str, str], str] = {}
        self.acls: dict[tuple[str, str], str] = {}
        self.fail_keys: set[str] = set()
        self.fail_listing = False
        self.pages_served = 0
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def add(self, bucket: str, key: str, data: bytes, etag: str = "") -> None:
        self.objects[bucket][key] = data
        if etag:
            self.etags[(bucket, key)] = etag

    def _etag(self, bucket: str, key: str) -> str:
        etag = self.etags.get((bucket, key))
        if etag is None:
            etag = hashlib.md5(self.objects[bucket][key]).hexdigest()
        return f'"{etag}"'

    def _record(self, name: str, key: str) -> None:
        with self._lock:
            self.calls.append((name, key))

    def list_objects(self, bucket, prefix):
        if self.fail_listing:
            raise ListingError(f"Failed to list {bucket}/{prefix}")
        keys = sorted(k for k in self.objects[bucket] if k.startswith(prefix))
        for start in range(0, len(keys), self.page_size):
            self.pages_served += 1
            for key in keys[start : start + self.page_size]:
                yield ObjectInfo(
                    key=key,
                    size=len(self.objects[bucket][key]),
                    etag=self._etag(bucket, key),
                )

    def get_object(self, bucket, key, writer):
        self._record("get", key)
        if key in self.fail_keys:
            raise TransferError(f"Download of {bucket}/{key} failed", key)
        writer.write(self.objects[bucket][key])

    def put_object(self, bucket, key, reader, content_type, acl):
        self._record("put", key)
        if key in self.fail_keys:
            raise TransferError(f"Upload to {bucket}/{key} failed", key)
        data = reader.read()
        with self._lock:
            self.objects[bucket][key] = data
            self.content_types[(bucket, key)] = content_type
            self.acls[(bucket, key)] = acl

    def copy_object(
        self, source_bucket, source_key, dest_bucket, dest_key, content_type, acl
    ):
        self._record("copy", dest_key)
        if dest_key in self.fail_keys:
            raise TransferError(f"Copy to {dest_bucket}/{dest_key} failed", dest_key)
        with self._lock:
            self.objects[dest_bucket][dest_key] = self.objects[source_bucket][
                source_key
            ]
            self.content_types[(dest_bucket, dest_key)] = content_type
            self.acls[(dest_bucket, dest_key)] = acl

    def delete_object(self, bucket, key):
        self._record("delete", key)
        if key in self.fail_keys:
            raise DeleteError(f"Delete of {bucket}/{key} failed", key)
        with self._lock:
            del self.objects[bucket][key]


@pytest.fixture
def fake_backend():
    """Provide an empty in-memory backend."""
    return FakeBackend()


@pytest.fixture
def quiet_output():
    """Provide an output formatter that prints nothing but errors."""
    return OutputFormatter(quiet=True)


@pytest.fixture
def make_tree():
    """Provide a helper that creates files from a {relative path: bytes} mapping."""

    def _make(root, files: dict[str, bytes]) -> None:
        for rel, data in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

    return _make
