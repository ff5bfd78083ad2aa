"""Core sync engine for executing sync plans."""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..config import DEFAULT_MAX_THREADS, SyncConfig
from ..exceptions import (
    ConfigurationError,
    ExecutionError,
    UnsupportedEndpointPairError,
)
from ..output import OutputFormatter
from ..storage import StorageBackend
from ..utils import format_size
from ..validation import VerificationResult, verify_destination
from .comparator import DiffResult, FileComparator
from .endpoint import Endpoint, resolve_endpoint
from .operations import SyncOperations
from .planner import (
    EXECUTION_ORDER,
    TRANSFER_KINDS,
    ActionItem,
    ActionKind,
    ActionPlan,
    SyncPlanner,
)
from .scanner import DirectoryScanner, EntrySet

logger = logging.getLogger(__name__)

# Closes a batch queue; one is queued per worker
_SENTINEL = object()

CANCELLED = "cancelled"


@dataclass
class ItemOutcome:
    """Result of performing one plan item."""

    item: ActionItem
    success: bool
    error: Optional[str] = None
    elapsed: float = 0.0


@dataclass
class BatchSummary:
    """Outcomes of one batch of same-kind items."""

    kind: ActionKind
    outcomes: list[ItemOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)


@dataclass
class ExecutionSummary:
    """Per-kind results of executing an action plan."""

    dry_run: bool = False
    cancelled: bool = False
    batches: dict[ActionKind, BatchSummary] = field(default_factory=dict)
    verification: Optional[VerificationResult] = None

    def succeeded(self, kind: ActionKind) -> int:
        batch = self.batches.get(kind)
        return batch.succeeded if batch else 0

    def failed(self, kind: ActionKind) -> int:
        batch = self.batches.get(kind)
        return batch.failed if batch else 0

    @property
    def total_succeeded(self) -> int:
        return sum(batch.succeeded for batch in self.batches.values())

    @property
    def total_failed(self) -> int:
        return sum(batch.failed for batch in self.batches.values())

    def failures(self) -> list[ItemOutcome]:
        """Failed outcomes in execution order."""
        return [
            outcome
            for kind in EXECUTION_ORDER
            if kind in self.batches
            for outcome in self.batches[kind].outcomes
            if not outcome.success
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert summary to a dictionary for JSON output."""
        data: dict[str, Any] = {
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
        }
        for kind in EXECUTION_ORDER:
            data[kind.value] = {
                "succeeded": self.succeeded(kind),
                "failed": self.failed(kind),
            }
        data["failures"] = [
            {"kind": o.item.kind.value, "key": o.item.key, "error": o.error}
            for o in self.failures()
        ]
        if self.verification is not None:
            data["verification"] = self.verification.to_dict()
        return data


class SyncExecutor:
    """Executes an action plan with a bounded worker pool per batch.

    Copy, download and upload batches run one after another, each with up to
    ``max_workers`` threads pulling items from a shared queue. Deletes run
    sequentially afterwards. A failing item is recorded and never stops its
    siblings.

    Item messages are reported from the dispatching thread in plan order, so
    a dry run reports exactly what a live run would.
    """

    def __init__(
        self,
        operations: SyncOperations,
        max_workers: int = DEFAULT_MAX_THREADS,
        dry_run: bool = False,
        reporter: Optional[Callable[[str], None]] = None,
        on_outcome: Optional[Callable[[ItemOutcome], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the executor.

        Args:
            operations: Operations used to perform items
            max_workers: Maximum parallel workers per transfer batch
            dry_run: Report items without performing them
            reporter: Called with each item's message before it is performed
            on_outcome: Called with each outcome as it is collected
            cancel_event: Event that stops execution when set

        Raises:
            ConfigurationError: If max_workers is less than 1
        """
        if max_workers < 1:
            raise ConfigurationError("max_workers cannot be less than 1")
        self.operations = operations
        self.max_workers = max_workers
        self.dry_run = dry_run
        self.reporter = reporter or logger.info
        self.on_outcome = on_outcome
        self._cancel_event = cancel_event or threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop execution; items not yet started are recorded as cancelled."""
        self._cancel_event.set()

    def execute(self, plan: ActionPlan) -> ExecutionSummary:
        """Execute every item of a plan.

        Args:
            plan: Plan to execute

        Returns:
            ExecutionSummary with one batch per non-empty kind

        Raises:
            ExecutionError: If any item failed or was cancelled
        """
        summary = ExecutionSummary(dry_run=self.dry_run)
        if not plan:
            logger.debug("Empty plan, nothing to execute")
            return summary

        batches = plan.partition()
        for kind in EXECUTION_ORDER:
            items = batches[kind]
            if not items:
                continue
            if kind == ActionKind.DELETE:
                summary.batches[kind] = self._run_sequential_batch(kind, items)
            else:
                summary.batches[kind] = self._run_pooled_batch(kind, items)

        summary.cancelled = self.cancelled
        if summary.total_failed:
            raise ExecutionError(summary)
        return summary

    def _run_pooled_batch(
        self, kind: ActionKind, items: list[ActionItem]
    ) -> BatchSummary:
        worker_count = min(self.max_workers, len(items))
        logger.debug(
            "Executing %d %s action(s) with %d worker(s)",
            len(items),
            kind.value,
            worker_count,
        )

        tasks: queue.Queue = queue.Queue()
        results: queue.Queue = queue.Queue()
        batch = BatchSummary(kind=kind)

        with ThreadPoolExecutor(
            max_workers=worker_count, thread_name_prefix=f"bucketsync-{kind.value}"
        ) as pool:
            for _ in range(worker_count):
                pool.submit(self._worker, tasks, results)

            for item in items:
                self.reporter(item.message)
                tasks.put(item)
            for _ in range(worker_count):
                tasks.put(_SENTINEL)

            try:
                # One outcome arrives per dispatched item
                for _ in range(len(items)):
                    self._collect(batch, results.get())
            except KeyboardInterrupt:
                self.cancel()
                raise

        return batch

    def _run_sequential_batch(
        self, kind: ActionKind, items: list[ActionItem]
    ) -> BatchSummary:
        logger.debug("Executing %d %s action(s) sequentially", len(items), kind.value)
        batch = BatchSummary(kind=kind)
        for item in items:
            self.reporter(item.message)
            self._collect(batch, self._process(item))
        return batch

    def _worker(self, tasks: queue.Queue, results: queue.Queue) -> None:
        while True:
            item = tasks.get()
            if item is _SENTINEL:
                return
            results.put(self._process(item))

    def _process(self, item: ActionItem) -> ItemOutcome:
        """Perform one item, turning any failure into a failed outcome."""
        if self.cancelled:
            return ItemOutcome(item=item, success=False, error=CANCELLED)
        if self.dry_run:
            return ItemOutcome(item=item, success=True)

        start = time.time()
        try:
            self.operations.perform(item)
        except Exception as e:
            return ItemOutcome(
                item=item, success=False, error=str(e), elapsed=time.time() - start
            )
        return ItemOutcome(item=item, success=True, elapsed=time.time() - start)

    def _collect(self, batch: BatchSummary, outcome: ItemOutcome) -> None:
        batch.outcomes.append(outcome)
        if outcome.success:
            logger.debug("Completed %s in %.2fs", outcome.item.key, outcome.elapsed)
        elif outcome.error != CANCELLED:
            logger.error("Failed %s: %s", outcome.item.message, outcome.error)
        if self.on_outcome is not None:
            self.on_outcome(outcome)


class SyncEngine:
    """Core sync engine that orchestrates listing, diffing, planning and execution."""

    def __init__(
        self,
        backend: Optional[StorageBackend] = None,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            backend: Storage backend for remote endpoints
            output: Output formatter for displaying progress/status
        """
        self.backend = backend
        self.output = output or OutputFormatter()
        self.scanner = DirectoryScanner()
        self.comparator = FileComparator()
        self.planner = SyncPlanner()

    def sync(
        self,
        config: SyncConfig,
        cancel_event: Optional[threading.Event] = None,
    ) -> ExecutionSummary:
        """Mirror the configured source to the configured destination.

        Args:
            config: Run configuration
            cancel_event: Event that stops execution when set

        Returns:
            ExecutionSummary

        Raises:
            ConfigurationError: If the configuration is invalid
            InvalidLocationError: If a location cannot be parsed
            UnsupportedEndpointPairError: If both endpoints are local
            ListingError: If either side cannot be listed completely
            ExecutionError: If any planned item failed

        Examples:
            >>> engine = SyncEngine(create_backend())  # doctest: +SKIP
            >>> config = SyncConfig("./photos", "remote://media/photos", dry_run=True)
            >>> summary = engine.sync(config)  # doctest: +SKIP
        """
        config.validate()
        source = resolve_endpoint(config.source)
        destination = resolve_endpoint(config.destination)
        if (source.kind, destination.kind) not in TRANSFER_KINDS:
            raise UnsupportedEndpointPairError(
                source.kind.value, destination.kind.value
            )

        if not self.output.quiet:
            self.output.info(
                f"Syncing: {source.describe()} -> {destination.describe()}"
            )
            if config.dry_run:
                self.output.info("Dry run: No changes will be made")
            self.output.print("")

        source_entries, destination_entries = self._list(source, destination)
        diff = self.comparator.compare(source_entries, destination_entries)
        plan = self.planner.plan(diff, source, destination, delete=config.delete)
        self._display_plan(diff, plan, config)

        operations = SyncOperations(self.backend, acl=config.acl)
        try:
            summary = self._execute(operations, plan, config, cancel_event)
        except ExecutionError as e:
            self._display_summary(e.summary)
            raise

        if config.verify and not config.dry_run:
            summary.verification = self._verify(destination, source_entries)

        self._display_summary(summary)
        return summary

    def _list(
        self, source: Endpoint, destination: Endpoint
    ) -> tuple[EntrySet, EntrySet]:
        """List both endpoints.

        Args:
            source: Source endpoint
            destination: Destination endpoint

        Returns:
            Tuple of (source entries, destination entries)
        """
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=self.output.console,
            disable=self.output.quiet,
        ) as progress:
            task = progress.add_task(f"Listing {source.describe()}...", total=None)
            source_entries = self.scanner.scan(source, self.backend)
            progress.update(
                task, description=f"Found {len(source_entries)} source file(s)"
            )

            task = progress.add_task(f"Listing {destination.describe()}...", total=None)
            destination_entries = self.scanner.scan(
                destination, self.backend, missing_ok=True
            )
            progress.update(
                task,
                description=f"Found {len(destination_entries)} destination file(s)",
            )

        logger.debug(
            "Listed %d source and %d destination file(s)",
            len(source_entries),
            len(destination_entries),
        )
        return source_entries, destination_entries

    def _execute(
        self,
        operations: SyncOperations,
        plan: ActionPlan,
        config: SyncConfig,
        cancel_event: Optional[threading.Event],
    ) -> ExecutionSummary:
        """Run the executor, with a progress bar unless output is quiet."""
        if self.output.quiet or not plan:
            executor = SyncExecutor(
                operations,
                max_workers=config.max_threads,
                dry_run=config.dry_run,
                reporter=self._report,
                cancel_event=cancel_event,
            )
            return executor.execute(plan)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.output.console,
            transient=True,
        ) as progress:
            task = progress.add_task("Syncing files...", total=len(plan))
            executor = SyncExecutor(
                operations,
                max_workers=config.max_threads,
                dry_run=config.dry_run,
                reporter=self._report,
                on_outcome=lambda _outcome: progress.advance(task),
                cancel_event=cancel_event,
            )
            return executor.execute(plan)

    def _report(self, message: str) -> None:
        logger.info(message)
        self.output.info(message)

    def _verify(
        self, destination: Endpoint, source_entries: EntrySet
    ) -> VerificationResult:
        """Re-list the destination and check it against the source listing."""
        if not self.output.quiet:
            self.output.info("Verifying destination...")
        result = verify_destination(
            destination, source_entries, backend=self.backend, scanner=self.scanner
        )
        if result.is_valid:
            self.output.success(
                f"Verified {len(result.verified) + len(result.size_only)} file(s)"
            )
        else:
            for key in result.missing:
                self.output.error(f"Missing after sync: {key}")
            for key in result.mismatched:
                self.output.error(f"Content differs after sync: {key}")
        return result

    def _display_plan(
        self, diff: DiffResult, plan: ActionPlan, config: SyncConfig
    ) -> None:
        """Display sync plan to user.

        Args:
            diff: Comparison result
            plan: Planned actions
            config: Run configuration
        """
        if self.output.quiet:
            return

        counts = plan.counts()
        transfer_bytes = sum(
            item.size for item in plan.values() if item.kind != ActionKind.DELETE
        )

        self.output.info("Sync plan:")
        if counts[ActionKind.COPY.value] > 0:
            self.output.info(f"  ⇄ Copy: {counts[ActionKind.COPY.value]} file(s)")
        if counts[ActionKind.DOWNLOAD.value] > 0:
            self.output.info(
                f"  ↓ Download: {counts[ActionKind.DOWNLOAD.value]} file(s)"
            )
        if counts[ActionKind.UPLOAD.value] > 0:
            self.output.info(f"  ↑ Upload: {counts[ActionKind.UPLOAD.value]} file(s)")
        if counts[ActionKind.DELETE.value] > 0:
            self.output.info(f"  ✗ Delete: {counts[ActionKind.DELETE.value]} file(s)")
        if diff.common:
            self.output.info(f"  = Unchanged: {len(diff.common)} file(s)")
        if diff.destination_only and not config.delete:
            self.output.info(
                f"  · Kept on destination: {len(diff.destination_only)} file(s) "
                "(use --delete to remove)"
            )
        if transfer_bytes:
            self.output.info(f"  Data to transfer: {format_size(transfer_bytes)}")
        self.output.print("")

    def _display_summary(self, summary: ExecutionSummary) -> None:
        """Display sync summary.

        Args:
            summary: Execution summary
        """
        # Individual failures were already logged by the executor
        if self.output.quiet:
            return

        self.output.print("")
        if summary.cancelled:
            self.output.warning("Sync cancelled")
        elif summary.total_failed:
            self.output.warning("Sync finished with errors")
        elif summary.dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")

        if not summary.batches:
            self.output.info("No changes needed - everything is in sync!")
            return

        if summary.dry_run:
            labels = {kind: f"Would {kind.value}" for kind in EXECUTION_ORDER}
        else:
            labels = {
                ActionKind.COPY: "Copied",
                ActionKind.DOWNLOAD: "Downloaded",
                ActionKind.UPLOAD: "Uploaded",
                ActionKind.DELETE: "Deleted",
            }
        total = summary.total_succeeded + summary.total_failed
        self.output.info(f"Total actions: {total}")
        for kind in EXECUTION_ORDER:
            if kind not in summary.batches:
                continue
            line = f"  {labels[kind]}: {summary.succeeded(kind)}"
            if summary.failed(kind):
                line += f" ({summary.failed(kind)} failed)"
            self.output.info(line)
