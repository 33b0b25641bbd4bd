"""Reconciliation engine - declarative package state management.

The engine turns a desired package state into package manager commands:
- Diff the desired state against the last recorded generation
- Render install/uninstall commands from each backend's templates
- Run them in order, stopping at the first failure
- Record a new generation when everything succeeded

Usage:
    from dpmm.engine import Reconciler
    from dpmm.store import GenerationStore

    reconciler = Reconciler(GenerationStore(cache_dir))
    report = reconciler.switch(inventory.get_descriptors(), dry_run=True)
"""

from .descriptor import BackendDescriptor, PLACEHOLDER
from .diff import DiffEngine, same_state, summarize_diff
from .executor import CommandResult, CommandRunner, ConfigExecutor
from .generator import CommandGenerator
from .reconciler import ALL_TARGET, Reconciler
from .schema import (
    BackendDiff,
    BackendOutcome,
    CommandPlan,
    DiffResult,
    ExecuteOptions,
    Operation,
    PackageState,
    PlannedCommand,
    ReconcilerState,
    SwitchReport,
)

__all__ = [
    # Main entry point
    "Reconciler",
    "ALL_TARGET",
    # Schema classes
    "BackendDiff",
    "BackendOutcome",
    "CommandPlan",
    "DiffResult",
    "ExecuteOptions",
    "Operation",
    "PackageState",
    "PlannedCommand",
    "ReconcilerState",
    "SwitchReport",
    # Components
    "BackendDescriptor",
    "PLACEHOLDER",
    "DiffEngine",
    "same_state",
    "summarize_diff",
    "CommandGenerator",
    "CommandResult",
    "CommandRunner",
    "ConfigExecutor",
]
