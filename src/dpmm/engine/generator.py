"""Command generator for turning diffs into ordered command plans."""
from typing import Sequence

from ..errors import ConfigError
from .descriptor import BackendDescriptor
from .schema import CommandPlan, DiffResult, Operation


class CommandGenerator:
    """Generate the ordered command plan for a run."""

    def generate(
        self,
        backends: Sequence[BackendDescriptor],
        diff: DiffResult,
        update: bool = False,
        upgrade: bool = False,
    ) -> CommandPlan:
        """
        Generate command plan from diff.

        Per backend, in diff order: update (if requested), uninstall,
        install, upgrade (if requested). Uninstall always runs before
        install so conflicting packages are gone before new ones land.

        Args:
            backends: Descriptors providing the command templates
            diff: Diff result with changes to apply
            update: Run each backend's update command first
            upgrade: Run each backend's upgrade command last

        Returns:
            CommandPlan with all commands

        Raises:
            ConfigError: If the diff names a backend without a descriptor
        """
        by_name = {b.name: b for b in backends}
        plan = CommandPlan()

        for change in diff.backend_diffs:
            descriptor = by_name.get(change.backend)
            if descriptor is None:
                raise ConfigError(
                    f"Manager '{change.backend}' is not configured"
                )

            if update:
                plan.steps.extend(descriptor.render(Operation.UPDATE))

            plan.steps.extend(
                descriptor.render(Operation.UNINSTALL, change.to_uninstall)
            )
            plan.steps.extend(
                descriptor.render(Operation.INSTALL, change.to_install)
            )

            if upgrade:
                plan.steps.extend(descriptor.render(Operation.UPGRADE))

        return plan

    def generate_maintenance(
        self,
        backends: Sequence[BackendDescriptor],
        operation: Operation,
    ) -> CommandPlan:
        """Generate update or upgrade commands for the given backends.

        Backends without a template for the operation are skipped.
        """
        if operation.takes_packages:
            raise ValueError(f"{operation.value} is not a maintenance operation")

        plan = CommandPlan()
        for descriptor in backends:
            plan.steps.extend(descriptor.render(operation))
        return plan
