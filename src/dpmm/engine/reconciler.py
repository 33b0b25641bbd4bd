"""Reconciler - drives switch, rollback, update and upgrade runs.

A run walks these states:

    Idle -> LoadingState -> Diffing -> Executing -> Committing -> Done
                                           |
                                           +-> Failed

Dry runs stop after Executing (commands rendered, not run) and go
straight to Done; they never record a generation.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from ..errors import (
    ConfigError,
    DpmmError,
    InvalidTarget,
    NotFound,
    StoreError,
)
from ..store import Generation, GenerationStore
from ..utils.logging_config import timed
from .descriptor import BackendDescriptor
from .diff import DiffEngine, same_state, summarize_diff
from .executor import ConfigExecutor
from .generator import CommandGenerator
from .schema import (
    ExecuteOptions,
    Operation,
    PackageState,
    ReconcilerState,
    SwitchReport,
)

logger = logging.getLogger(__name__)

ALL_TARGET = "all"


class Reconciler:
    """
    Reconcile installed packages with a desired state and record history.

    Usage:
        reconciler = Reconciler(GenerationStore(cache_dir))
        report = reconciler.switch(inventory.get_descriptors(), dry_run=True)
    """

    def __init__(
        self,
        store: GenerationStore,
        executor: Optional[ConfigExecutor] = None,
    ):
        """
        Initialize the Reconciler.

        Args:
            store: Generation history
            executor: Command executor (default runs real subprocesses)
        """
        self.store = store
        self.diff_engine = DiffEngine()
        self.generator = CommandGenerator()
        self.executor = executor or ConfigExecutor()

    # === Public operations ===

    @timed("switch")
    def switch(
        self,
        backends: Sequence[BackendDescriptor],
        dry_run: bool = False,
        update: bool = False,
        upgrade: bool = False,
    ) -> SwitchReport:
        """
        Reconcile toward the packages declared in the given descriptors.

        Args:
            backends: Configured backends, in processing order
            dry_run: Render commands without running them or recording history
            update: Run each backend's update command before its changes
            upgrade: Run each backend's upgrade command after its changes

        Returns:
            SwitchReport; report.generation is the new sequence if one was
            recorded
        """
        report = SwitchReport(operation="switch", dry_run=dry_run)

        self._transition(report, ReconcilerState.LOADING_STATE)
        try:
            previous = self._load_previous()
        except StoreError as e:
            return self._fail(report, e)

        desired: PackageState = {b.name: b.packages for b in backends}

        return self._reconcile(
            report,
            backends,
            previous,
            desired,
            always_commit=False,
            update=update,
            upgrade=upgrade,
        )

    @timed("rollback")
    def rollback(
        self,
        backends: Sequence[BackendDescriptor],
        target: Optional[int] = None,
        dry_run: bool = False,
    ) -> SwitchReport:
        """
        Reconcile toward the state recorded in a previous generation.

        The target generation's state is the desired state and the latest
        generation's state is the previous state; the run then behaves
        exactly like a switch and records a new generation on success.

        Args:
            backends: Configured backends (supply the command templates)
            target: Generation to restore (default: the one before the latest)
            dry_run: Render commands without running them or recording history
        """
        report = SwitchReport(operation="rollback", dry_run=dry_run)

        self._transition(report, ReconcilerState.LOADING_STATE)
        try:
            current = self.store.latest()
            if current is None:
                return self._fail(report, NotFound("No generations recorded yet"))

            if target is None:
                older = [s for s in self.store.sequences() if s < current.sequence]
                if not older:
                    return self._fail(
                        report, NotFound("No previous generation to roll back to")
                    )
                target = older[-1]

            if target == current.sequence:
                return self._fail(
                    report,
                    NotFound(f"Generation {target} is already the current generation"),
                )

            generation = self.store.get(target)
        except StoreError as e:
            return self._fail(report, e)

        if generation is None:
            return self._fail(report, NotFound(f"Generation {target} does not exist"))

        try:
            restored = self._restore_backends(backends, generation)
        except ConfigError as e:
            return self._fail(report, e)

        # Target generation's manager order becomes the processing order
        desired: PackageState = {
            b.name: generation.state[b.name] for b in restored
        }

        logger.info(
            f"Rolling back from generation {current.sequence} to {generation.sequence}"
        )
        return self._reconcile(
            report, restored, current, desired, always_commit=True
        )

    @timed("maintenance")
    def update_or_upgrade(
        self,
        backends: Sequence[BackendDescriptor],
        target: Optional[str],
        kind: Operation,
        dry_run: bool = False,
    ) -> SwitchReport:
        """
        Run update or upgrade for one named backend or for `all`.

        Backends without a template for `kind` are skipped silently.

        Raises:
            ValueError: If kind is not UPDATE or UPGRADE
        """
        if kind not in (Operation.UPDATE, Operation.UPGRADE):
            raise ValueError(f"{kind.value} is not an update/upgrade operation")

        report = SwitchReport(operation=kind.value, dry_run=dry_run)

        if not target:
            return self._fail(
                report,
                InvalidTarget(f"{kind.value} requires a manager name or '{ALL_TARGET}'"),
            )

        if target == ALL_TARGET:
            selected = list(backends)
        else:
            selected = [b for b in backends if b.name == target]
            if not selected:
                return self._fail(
                    report, InvalidTarget(f"Unknown manager '{target}'")
                )

        plan = self.generator.generate_maintenance(selected, kind)

        self._transition(report, ReconcilerState.EXECUTING)
        outcomes, failure = self.executor.execute(
            plan,
            [b.name for b in selected],
            ExecuteOptions(dry_run=dry_run, audit_context=kind.value),
        )
        report.backends = outcomes

        for outcome in outcomes:
            if not outcome.commands:
                logger.info(f"No {kind.value} command configured for {outcome.backend}")

        if failure is not None:
            self._warn_untouched(report, [b.name for b in selected])
            return self._fail(report, failure)

        report.success = True
        self._transition(report, ReconcilerState.DONE)
        return report

    def list_generations(self) -> list[dict[str, Any]]:
        """
        Generation history for display, ascending by sequence.

        Raises:
            StoreError: If the history cannot be read
        """
        generations = self.store.list()
        current = generations[-1].sequence if generations else None
        return [
            {
                "sequence": g.sequence,
                "timestamp": g.timestamp,
                "summary": g.summary(),
                "current": g.sequence == current,
            }
            for g in generations
        ]

    # === Pipeline ===

    def _load_previous(self) -> Generation:
        """Latest generation, or an empty bootstrap generation 0."""
        latest = self.store.latest()
        if latest is not None:
            return latest

        logger.info("No generations recorded yet, starting from an empty state")
        return Generation(
            sequence=0, timestamp=datetime.now(timezone.utc), state={}
        )

    def _restore_backends(
        self,
        backends: Sequence[BackendDescriptor],
        generation: Generation,
    ) -> list[BackendDescriptor]:
        """
        Descriptors for every manager in a generation, in its order.

        Configured managers use their current definition; managers removed
        from the config since are rebuilt from the definition the
        generation recorded.

        Raises:
            ConfigError: If a manager is neither configured nor recorded
        """
        configured = {b.name: b for b in backends}
        restored: list[BackendDescriptor] = []
        missing: list[str] = []

        for name in generation.state:
            descriptor = configured.get(name)
            if descriptor is None and name in generation.backends:
                logger.info(
                    f"Manager '{name}' is not configured, using the definition "
                    f"recorded in generation {generation.sequence}"
                )
                descriptor = BackendDescriptor.from_config(
                    name, generation.backends[name]
                )
            if descriptor is None:
                missing.append(name)
            else:
                restored.append(descriptor)

        if missing:
            raise ConfigError(
                f"Generation {generation.sequence} tracks managers that are not "
                f"configured and has no recorded definition for them: "
                f"{', '.join(missing)}"
            )
        return restored

    def _reconcile(
        self,
        report: SwitchReport,
        backends: Sequence[BackendDescriptor],
        previous: Generation,
        desired: PackageState,
        always_commit: bool,
        update: bool = False,
        upgrade: bool = False,
    ) -> SwitchReport:
        """Diffing -> Executing -> Committing, shared by switch and rollback."""
        self._transition(report, ReconcilerState.DIFFING)
        diff = self.diff_engine.calculate(previous.state, desired)
        report.diff = diff
        report.no_change = diff.no_change

        for orphan in diff.orphaned_backends:
            report.warnings.append(
                f"Manager '{orphan}' is not part of the desired state; "
                f"its packages were left installed"
            )

        logger.debug(summarize_diff(diff))

        try:
            plan = self.generator.generate(backends, diff, update=update, upgrade=upgrade)
        except ConfigError as e:
            return self._fail(report, e)

        should_commit = always_commit or not same_state(previous.state, desired)
        backend_order = [d.backend for d in diff.backend_diffs]

        logger.info(
            f"{'DRY RUN: ' if report.dry_run else ''}"
            f"{diff.total_changes} package change(s), {plan.total_commands} command(s)"
        )

        self._transition(report, ReconcilerState.EXECUTING)
        outcomes, failure = self.executor.execute(
            plan,
            backend_order,
            ExecuteOptions(dry_run=report.dry_run, audit_context=report.operation),
        )
        report.backends = outcomes

        for outcome in outcomes:
            if outcome.nothing_to_resolve:
                logger.info(f"Nothing to resolve with {outcome.backend}!")

        if failure is not None:
            self._warn_untouched(report, backend_order)
            return self._fail(report, failure)

        if report.dry_run:
            if should_commit:
                report.planned_generation = previous.sequence + 1
                report.planned_state = dict(desired)
            report.success = True
            self._transition(report, ReconcilerState.DONE)
            return report

        if not should_commit:
            logger.info("Desired state matches the current generation, nothing recorded")
            report.success = True
            self._transition(report, ReconcilerState.DONE)
            return report

        self._transition(report, ReconcilerState.COMMITTING)
        try:
            generation = self.store.append(
                desired,
                backends={b.name: b.to_config() for b in backends if b.name in desired},
            )
        except StoreError as e:
            if plan.total_commands:
                report.warnings.append(
                    "Package changes were applied but the generation was NOT "
                    "recorded; history no longer matches the system"
                )
            return self._fail(report, e)

        report.generation = generation.sequence
        report.history_recorded = True
        report.success = True
        self._transition(report, ReconcilerState.DONE)
        return report

    # === Helpers ===

    def _transition(self, report: SwitchReport, state: ReconcilerState) -> None:
        report.state = state
        report.transitions.append(state)
        logger.debug(f"{report.operation}: -> {state.value}")

    def _fail(self, report: SwitchReport, error: DpmmError) -> SwitchReport:
        report.error = error
        report.success = False
        self._transition(report, ReconcilerState.FAILED)
        logger.error(f"{report.operation} failed: {error}")
        return report

    def _warn_untouched(self, report: SwitchReport, backend_order: list[str]) -> None:
        reached = {o.backend for o in report.backends}
        untouched = [b for b in backend_order if b not in reached]
        if untouched:
            report.warnings.append(
                f"Not processed: {', '.join(untouched)}"
            )
        if any(o.success and o.commands for o in report.backends):
            report.warnings.append(
                "Changes already applied to earlier managers were not reverted"
            )
