"""Tests for the sync executor and engine."""

import logging
import threading
import time
from unittest.mock import Mock

import pytest

from bucketsync.config import SyncConfig
from bucketsync.exceptions import (
    ConfigurationError,
    ExecutionError,
    InvalidLocationError,
    ListingError,
    UnsupportedEndpointPairError,
)
from bucketsync.output import OutputFormatter
from bucketsync.sync import SyncEngine
from bucketsync.sync.engine import CANCELLED, SyncExecutor
from bucketsync.sync.planner import ActionItem, ActionKind, ActionPlan


def _plan(*specs: tuple[ActionKind, str]) -> ActionPlan:
    """Build a plan from (kind, key) pairs."""
    return ActionPlan(
        {
            key: ActionItem(
                kind=kind,
                key=key,
                source_locator=f"src/{key}",
                destination_locator=f"dst/{key}",
                content_digest="d",
                size=1,
                message=f"{kind.value}: {key}",
            )
            for kind, key in specs
        }
    )


class TestSyncExecutor:
    """Tests for SyncExecutor."""

    @pytest.fixture
    def operations(self):
        """Create mock sync operations."""
        return Mock()

    def test_rejects_zero_workers(self, operations):
        with pytest.raises(ConfigurationError):
            SyncExecutor(operations, max_workers=0)

    def test_empty_plan(self, operations):
        summary = SyncExecutor(operations).execute(ActionPlan())

        assert summary.batches == {}
        assert summary.total_succeeded == 0
        operations.perform.assert_not_called()

    def test_performs_every_item(self, operations):
        plan = _plan(*[(ActionKind.UPLOAD, f"f{i}") for i in range(10)])

        summary = SyncExecutor(operations, max_workers=3).execute(plan)

        assert operations.perform.call_count == 10
        performed = {call.args[0].key for call in operations.perform.call_args_list}
        assert performed == set(plan)
        assert summary.succeeded(ActionKind.UPLOAD) == 10
        assert summary.failed(ActionKind.UPLOAD) == 0

    def test_dry_run_reports_same_messages(self, operations):
        plan = _plan(
            (ActionKind.UPLOAD, "a"),
            (ActionKind.UPLOAD, "b"),
            (ActionKind.DELETE, "c"),
        )
        live: list[str] = []
        dry: list[str] = []

        SyncExecutor(operations, reporter=live.append).execute(plan)
        operations.reset_mock()
        summary = SyncExecutor(operations, dry_run=True, reporter=dry.append).execute(
            plan
        )

        assert dry == live == ["upload: a", "upload: b", "delete: c"]
        operations.perform.assert_not_called()
        assert summary.dry_run
        assert summary.succeeded(ActionKind.UPLOAD) == 2
        assert summary.succeeded(ActionKind.DELETE) == 1

    def test_failure_does_not_stop_siblings(self, operations, caplog):
        def perform(item):
            if item.key == "bad":
                raise RuntimeError("boom")

        operations.perform.side_effect = perform
        plan = _plan(
            (ActionKind.UPLOAD, "a"),
            (ActionKind.UPLOAD, "bad"),
            (ActionKind.UPLOAD, "c"),
        )

        with caplog.at_level(logging.ERROR, logger="bucketsync"):
            with pytest.raises(ExecutionError) as exc_info:
                SyncExecutor(operations, max_workers=2).execute(plan)

        summary = exc_info.value.summary
        assert operations.perform.call_count == 3
        assert summary.succeeded(ActionKind.UPLOAD) == 2
        assert summary.failed(ActionKind.UPLOAD) == 1
        assert [(o.item.key, o.error) for o in summary.failures()] == [("bad", "boom")]
        assert "1 action(s) failed" in str(exc_info.value)
        assert "Failed upload: bad: boom" in caplog.text

    def test_worker_bound(self, operations):
        lock = threading.Lock()
        active = 0
        peak = 0

        def perform(item):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with lock:
                active -= 1

        operations.perform.side_effect = perform
        plan = _plan(*[(ActionKind.DOWNLOAD, f"f{i}") for i in range(12)])

        SyncExecutor(operations, max_workers=3).execute(plan)

        assert 1 <= peak <= 3

    def test_deletes_run_sequentially_after_transfers(self, operations):
        lock = threading.Lock()
        order: list[ActionKind] = []
        active_deletes = 0
        peak_deletes = 0

        def perform(item):
            nonlocal active_deletes, peak_deletes
            with lock:
                order.append(item.kind)
                if item.kind == ActionKind.DELETE:
                    active_deletes += 1
                    peak_deletes = max(peak_deletes, active_deletes)
            time.sleep(0.005)
            with lock:
                if item.kind == ActionKind.DELETE:
                    active_deletes -= 1

        operations.perform.side_effect = perform
        plan = _plan(
            (ActionKind.DELETE, "x"),
            (ActionKind.DELETE, "y"),
            (ActionKind.COPY, "a"),
            (ActionKind.COPY, "b"),
            (ActionKind.COPY, "c"),
        )

        summary = SyncExecutor(operations, max_workers=4).execute(plan)

        assert order[:3] == [ActionKind.COPY] * 3
        assert order[3:] == [ActionKind.DELETE] * 2
        assert peak_deletes == 1
        assert list(summary.batches) == [ActionKind.COPY, ActionKind.DELETE]

    def test_batches_follow_execution_order(self, operations):
        plan = _plan(
            (ActionKind.UPLOAD, "u"),
            (ActionKind.DOWNLOAD, "d"),
            (ActionKind.COPY, "c"),
        )
        messages: list[str] = []

        SyncExecutor(operations, reporter=messages.append).execute(plan)

        assert messages == ["copy: c", "download: d", "upload: u"]

    def test_pre_cancelled_run(self, operations):
        cancel = threading.Event()
        cancel.set()
        plan = _plan((ActionKind.UPLOAD, "a"), (ActionKind.UPLOAD, "b"))

        with pytest.raises(ExecutionError) as exc_info:
            SyncExecutor(operations, cancel_event=cancel).execute(plan)

        summary = exc_info.value.summary
        assert summary.cancelled
        assert summary.failed(ActionKind.UPLOAD) == 2
        assert {o.error for o in summary.failures()} == {CANCELLED}
        operations.perform.assert_not_called()

    def test_cancel_mid_run(self, operations):
        executor = SyncExecutor(operations, max_workers=1)

        def perform(item):
            if item.key == "a":
                executor.cancel()

        operations.perform.side_effect = perform
        plan = _plan((ActionKind.UPLOAD, "a"), (ActionKind.UPLOAD, "b"))

        with pytest.raises(ExecutionError) as exc_info:
            executor.execute(plan)

        summary = exc_info.value.summary
        assert summary.cancelled
        assert summary.succeeded(ActionKind.UPLOAD) == 1
        assert [o.item.key for o in summary.failures()] == ["b"]

    def test_on_outcome_called_per_item(self, operations):
        seen = []
        plan = _plan((ActionKind.UPLOAD, "a"), (ActionKind.DELETE, "b"))

        SyncExecutor(operations, on_outcome=seen.append).execute(plan)

        assert sorted(o.item.key for o in seen) == ["a", "b"]
        assert all(o.success for o in seen)

    def test_summary_to_dict(self, operations):
        operations.perform.side_effect = RuntimeError("nope")
        plan = _plan((ActionKind.DELETE, "gone"))

        with pytest.raises(ExecutionError) as exc_info:
            SyncExecutor(operations).execute(plan)

        data = exc_info.value.summary.to_dict()
        assert data["delete"] == {"succeeded": 0, "failed": 1}
        assert data["upload"] == {"succeeded": 0, "failed": 0}
        assert data["failures"] == [
            {"kind": "delete", "key": "gone", "error": "nope"}
        ]
        assert "verification" not in data


class TestSyncEngine:
    """End-to-end runs against an in-memory backend."""

    @pytest.fixture
    def engine(self, fake_backend, quiet_output):
        return SyncEngine(fake_backend, quiet_output)

    def test_upload_new_files(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"alpha", "sub/b.txt": b"bravo"})

        summary = engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        assert summary.succeeded(ActionKind.UPLOAD) == 2
        assert fake_backend.objects["media"] == {
            "photos/a.txt": b"alpha",
            "photos/sub/b.txt": b"bravo",
        }
        assert fake_backend.acls[("media", "photos/a.txt")] == "private"

    def test_second_run_is_a_no_op(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"alpha", "sub/b.txt": b"bravo"})
        config = SyncConfig(str(tmp_path), "remote://media/photos", delete=True)
        engine.sync(config)
        fake_backend.calls.clear()

        summary = engine.sync(config)

        assert summary.batches == {}
        assert fake_backend.calls == []

    def test_changed_file_reuploaded(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"new", "same.txt": b"same"})
        fake_backend.add("media", "photos/a.txt", b"old")
        fake_backend.add("media", "photos/same.txt", b"same")

        summary = engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        assert fake_backend.calls == [("put", "photos/a.txt")]
        assert fake_backend.objects["media"]["photos/a.txt"] == b"new"
        assert summary.total_succeeded == 1

    def test_destination_only_kept_without_delete(
        self, engine, fake_backend, tmp_path, make_tree
    ):
        make_tree(tmp_path, {"a.txt": b"a"})
        fake_backend.add("media", "photos/extra.txt", b"extra")

        engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        assert "photos/extra.txt" in fake_backend.objects["media"]

    def test_destination_only_deleted_with_delete(
        self, engine, fake_backend, tmp_path, make_tree
    ):
        make_tree(tmp_path, {"a.txt": b"a"})
        fake_backend.add("media", "photos/extra.txt", b"extra")
        fake_backend.add("media", "other/keep.txt", b"keep")

        summary = engine.sync(
            SyncConfig(str(tmp_path), "remote://media/photos", delete=True)
        )

        assert summary.succeeded(ActionKind.DELETE) == 1
        assert set(fake_backend.objects["media"]) == {"photos/a.txt", "other/keep.txt"}

    def test_download_into_new_directory(self, engine, fake_backend, tmp_path):
        fake_backend.add("media", "photos/a.txt", b"alpha")
        fake_backend.add("media", "photos/x/y.txt", b"deep")
        target = tmp_path / "restore"

        summary = engine.sync(SyncConfig("remote://media/photos", str(target)))

        assert summary.succeeded(ActionKind.DOWNLOAD) == 2
        assert (target / "a.txt").read_bytes() == b"alpha"
        assert (target / "x" / "y.txt").read_bytes() == b"deep"

    def test_download_deletes_local_extras(
        self, engine, fake_backend, tmp_path, make_tree
    ):
        fake_backend.add("media", "photos/a.txt", b"alpha")
        make_tree(tmp_path, {"a.txt": b"alpha", "stale.txt": b"stale"})

        summary = engine.sync(
            SyncConfig("remote://media/photos", str(tmp_path), delete=True)
        )

        assert summary.succeeded(ActionKind.DELETE) == 1
        assert summary.succeeded(ActionKind.DOWNLOAD) == 0
        assert not (tmp_path / "stale.txt").exists()
        assert (tmp_path / "a.txt").exists()

    def test_remote_to_remote_copy(self, engine, fake_backend):
        fake_backend.add("media", "photos/a.txt", b"alpha")
        fake_backend.add("backup", "photos/a.txt", b"stale")

        summary = engine.sync(
            SyncConfig("remote://media/photos", "remote://backup/photos")
        )

        assert summary.succeeded(ActionKind.COPY) == 1
        assert fake_backend.objects["backup"]["photos/a.txt"] == b"alpha"

    def test_dry_run_changes_nothing(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a", "b.txt": b"b"})
        fake_backend.add("media", "photos/extra.txt", b"extra")

        summary = engine.sync(
            SyncConfig(
                str(tmp_path), "remote://media/photos", delete=True, dry_run=True
            )
        )

        assert summary.dry_run
        assert summary.succeeded(ActionKind.UPLOAD) == 2
        assert summary.succeeded(ActionKind.DELETE) == 1
        assert fake_backend.calls == []
        assert set(fake_backend.objects["media"]) == {"photos/extra.txt"}

    def test_dry_run_reports_like_live_run(
        self, fake_backend, quiet_output, tmp_path, make_tree, caplog
    ):
        make_tree(tmp_path, {"a.txt": b"a", "b.txt": b"b"})
        fake_backend.add("media", "photos/extra.txt", b"extra")
        engine = SyncEngine(fake_backend, quiet_output)

        def messages(dry_run):
            caplog.clear()
            with caplog.at_level(logging.INFO, logger="bucketsync"):
                engine.sync(
                    SyncConfig(
                        str(tmp_path),
                        "remote://media/photos",
                        delete=True,
                        dry_run=dry_run,
                    )
                )
            return [
                r.getMessage()
                for r in caplog.records
                if r.name == "bucketsync.sync.engine" and r.levelno == logging.INFO
            ]

        dry = messages(True)
        live = messages(False)

        assert dry == live
        assert len(live) == 3
        assert live[-1] == "delete: remote://media/photos/extra.txt"

    def test_verify_after_sync(self, engine, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a", "b.txt": b"b"})

        summary = engine.sync(
            SyncConfig(str(tmp_path), "remote://media/photos", verify=True)
        )

        assert summary.verification is not None
        assert summary.verification.is_valid
        assert sorted(summary.verification.verified) == ["a.txt", "b.txt"]
        assert summary.to_dict()["verification"]["valid"] is True

    def test_verify_skipped_in_dry_run(self, engine, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a"})

        summary = engine.sync(
            SyncConfig(
                str(tmp_path), "remote://media/photos", verify=True, dry_run=True
            )
        )

        assert summary.verification is None

    def test_failed_upload_isolated(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a", "b.txt": b"b", "c.txt": b"c"})
        fake_backend.fail_keys.add("photos/b.txt")

        with pytest.raises(ExecutionError) as exc_info:
            engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        summary = exc_info.value.summary
        assert summary.succeeded(ActionKind.UPLOAD) == 2
        assert summary.failed(ActionKind.UPLOAD) == 1
        assert set(fake_backend.objects["media"]) == {"photos/a.txt", "photos/c.txt"}

    def test_local_to_local_rejected_before_listing(self, engine, tmp_path):
        with pytest.raises(UnsupportedEndpointPairError):
            engine.sync(SyncConfig(str(tmp_path / "missing"), str(tmp_path / "b")))

    def test_missing_local_source(self, engine, fake_backend, tmp_path):
        with pytest.raises(ListingError, match="does not exist"):
            engine.sync(SyncConfig(str(tmp_path / "missing"), "remote://media/p"))
        assert fake_backend.calls == []

    def test_listing_failure_aborts(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a"})
        fake_backend.fail_listing = True

        with pytest.raises(ListingError):
            engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))
        assert fake_backend.calls == []

    def test_invalid_config(self, engine):
        with pytest.raises(ConfigurationError):
            engine.sync(SyncConfig("", "remote://media/photos"))

    def test_invalid_location(self, engine, tmp_path):
        with pytest.raises(InvalidLocationError):
            engine.sync(SyncConfig(str(tmp_path), "remote:///photos"))

    def test_custom_acl_applied(self, engine, fake_backend, tmp_path, make_tree):
        make_tree(tmp_path, {"a.txt": b"a"})

        engine.sync(
            SyncConfig(str(tmp_path), "remote://media/photos", acl="public-read")
        )

        assert fake_backend.acls[("media", "photos/a.txt")] == "public-read"

    def test_console_output(self, fake_backend, tmp_path, make_tree, capsys):
        make_tree(tmp_path, {"a.txt": b"a"})
        fake_backend.add("media", "photos/old.txt", b"old")
        engine = SyncEngine(fake_backend, OutputFormatter())

        engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        out = capsys.readouterr().out
        assert "Sync plan:" in out
        assert "Kept on destination: 1 file(s)" in out
        assert "Sync complete!" in out
        assert "Uploaded: 1" in out

    def test_console_output_when_in_sync(self, fake_backend, tmp_path, capsys):
        engine = SyncEngine(fake_backend, OutputFormatter())

        engine.sync(SyncConfig(str(tmp_path), "remote://media/photos"))

        assert "everything is in sync" in capsys.readouterr().out
