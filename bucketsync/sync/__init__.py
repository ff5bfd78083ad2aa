"""Sync pipeline for bucketsync - list, diff, plan and execute."""

from .comparator import DiffResult, FileComparator, diff_entries
from .endpoint import Endpoint, EndpointKind, resolve_endpoint
from .engine import (
    BatchSummary,
    ExecutionSummary,
    ItemOutcome,
    SyncEngine,
    SyncExecutor,
)
from .operations import SyncOperations
from .planner import ActionItem, ActionKind, ActionPlan, SyncPlanner, build_plan
from .scanner import DirectoryScanner, Entry, EntrySet, derive_key

__all__ = [
    "SyncEngine",
    "SyncExecutor",
    "SyncOperations",
    "SyncPlanner",
    "DirectoryScanner",
    "FileComparator",
    "DiffResult",
    "Endpoint",
    "EndpointKind",
    "Entry",
    "EntrySet",
    "ActionItem",
    "ActionKind",
    "ActionPlan",
    "BatchSummary",
    "ExecutionSummary",
    "ItemOutcome",
    "build_plan",
    "derive_key",
    "diff_entries",
    "resolve_endpoint",
]
