"""Schema definitions for the reconciliation engine.

Defines package states, diffs, command plans and run reports.
"""
import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import DpmmError
from ..store.generation import PackageState


class Operation(str, Enum):
    """Kind of package manager invocation."""
    UPDATE = "update"
    UNINSTALL = "uninstall"
    INSTALL = "install"
    UPGRADE = "upgrade"

    @property
    def takes_packages(self) -> bool:
        return self in (Operation.INSTALL, Operation.UNINSTALL)


class ReconcilerState(str, Enum):
    """States traversed by one switch/rollback/update run."""
    IDLE = "idle"
    LOADING_STATE = "loading_state"
    DIFFING = "diffing"
    EXECUTING = "executing"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


# --- Diff Results ---

@dataclass
class BackendDiff:
    """Packages to install and uninstall for one backend."""
    backend: str
    to_install: list[str] = field(default_factory=list)
    to_uninstall: list[str] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        return not self.to_install and not self.to_uninstall


@dataclass
class DiffResult:
    """Per-backend diffs, in backend processing order."""
    backend_diffs: list[BackendDiff] = field(default_factory=list)
    # Backends tracked in the previous state but no longer desired.
    # Never uninstalled automatically.
    orphaned_backends: list[str] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        """Check if there are any changes."""
        return all(d.no_change for d in self.backend_diffs)

    @property
    def total_changes(self) -> int:
        """Total number of packages to install or uninstall."""
        return sum(
            len(d.to_install) + len(d.to_uninstall)
            for d in self.backend_diffs
        )

    def get(self, backend: str) -> Optional[BackendDiff]:
        for d in self.backend_diffs:
            if d.backend == backend:
                return d
        return None


# --- Command Plan ---

@dataclass
class PlannedCommand:
    """One rendered package manager invocation."""
    backend: str
    operation: Operation
    argv: list[str]
    packages: list[str] = field(default_factory=list)

    @property
    def command(self) -> str:
        return shlex.join(self.argv)

    def __str__(self) -> str:
        return self.command


@dataclass
class CommandPlan:
    """Ordered list of pending commands for a run."""
    steps: list[PlannedCommand] = field(default_factory=list)

    @property
    def total_commands(self) -> int:
        return len(self.steps)

    @property
    def commands(self) -> list[str]:
        return [step.command for step in self.steps]

    def for_backend(self, backend: str) -> list[PlannedCommand]:
        return [step for step in self.steps if step.backend == backend]


# --- Execution Results ---

@dataclass
class ExecuteOptions:
    """Options for plan execution."""
    dry_run: bool = False
    audit_context: str = ""


@dataclass
class BackendOutcome:
    """What happened (or would happen) for one backend."""
    backend: str
    commands: list[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    nothing_to_resolve: bool = False


@dataclass
class SwitchReport:
    """Result of a switch, rollback, update or upgrade run."""
    operation: str
    success: bool = False
    dry_run: bool = False
    state: ReconcilerState = ReconcilerState.IDLE
    transitions: list[ReconcilerState] = field(default_factory=list)
    backends: list[BackendOutcome] = field(default_factory=list)
    diff: Optional[DiffResult] = None
    generation: Optional[int] = None
    planned_generation: Optional[int] = None
    planned_state: Optional[PackageState] = None
    history_recorded: bool = False
    no_change: bool = False
    error: Optional[DpmmError] = None
    warnings: list[str] = field(default_factory=list)

    def outcome(self, backend: str) -> Optional[BackendOutcome]:
        for o in self.backends:
            if o.backend == backend:
                return o
        return None

    @property
    def commands(self) -> list[str]:
        """All commands run or planned, in execution order."""
        return [cmd for o in self.backends for cmd in o.commands]
