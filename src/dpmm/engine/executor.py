"""Executor for running command plans against local package managers.

Commands run one at a time, each awaited to completion, in plan order.
The first failure stops the run; nothing already applied is reverted.
"""
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from ..errors import ExecutionFailure
from ..utils.audit_log import log_command
from ..utils.logging_config import timed_section
from .schema import BackendOutcome, CommandPlan, ExecuteOptions, PlannedCommand

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of one subprocess invocation."""
    success: bool
    exit_code: Optional[int] = None
    error: str = ""

    @property
    def exit_info(self) -> str:
        if self.error:
            return self.error
        return f"exit code {self.exit_code}"


class CommandRunner:
    """Run an argv as a blocking subprocess.

    stdin/stdout/stderr are inherited so package manager prompts and
    progress reach the user.
    """

    def run(self, argv: Sequence[str]) -> CommandResult:
        try:
            completed = subprocess.run(list(argv), check=False)
        except FileNotFoundError:
            return CommandResult(False, error=f"command not found: {argv[0]}")
        except PermissionError as e:
            return CommandResult(False, error=f"cannot execute {argv[0]}: {e}")

        return CommandResult(
            success=completed.returncode == 0,
            exit_code=completed.returncode,
        )


class ConfigExecutor:
    """Execute command plans, backend by backend."""

    def __init__(self, runner: Optional[CommandRunner] = None):
        """
        Initialize executor.

        Args:
            runner: Subprocess runner (replaceable for tests)
        """
        self.runner = runner or CommandRunner()

    def execute(
        self,
        plan: CommandPlan,
        backend_order: Sequence[str],
        options: ExecuteOptions,
    ) -> tuple[list[BackendOutcome], Optional[ExecutionFailure]]:
        """
        Execute a command plan.

        Args:
            plan: Command plan to execute
            backend_order: Backends to report on, in processing order
            options: Execution options (dry_run, audit context)

        Returns:
            (outcomes, failure). On failure, outcomes end with the failed
            backend and later backends are left untouched.
        """
        outcomes: list[BackendOutcome] = []

        for backend in backend_order:
            steps = plan.for_backend(backend)
            outcome = BackendOutcome(backend=backend)
            outcomes.append(outcome)

            if not steps:
                outcome.nothing_to_resolve = True
                logger.debug(f"No commands for {backend}")
                continue

            for step in steps:
                outcome.commands.append(step.command)

                if options.dry_run:
                    self._audit(step, options, success=True)
                    continue

                failure = self._run_step(step, options)
                if failure is not None:
                    outcome.success = False
                    outcome.error = str(failure)
                    return outcomes, failure

        return outcomes, None

    def _run_step(
        self,
        step: PlannedCommand,
        options: ExecuteOptions,
    ) -> Optional[ExecutionFailure]:
        """Run a single command, returning an ExecutionFailure if it failed."""
        logger.info(f"[{step.backend}] {step.operation.value}: {step.command}")

        with timed_section(
            step.operation.value,
            backend=step.backend,
            packages=len(step.packages),
        ):
            result = self.runner.run(step.argv)

        self._audit(
            step,
            options,
            success=result.success,
            exit_code=result.exit_code,
            error=result.error or None,
        )

        if result.success:
            return None

        logger.error(
            f"[{step.backend}] {step.operation.value} failed ({result.exit_info}): "
            f"{step.command}"
        )
        return ExecutionFailure(
            backend=step.backend,
            operation=step.operation.value,
            exit_info=result.exit_info,
            packages=step.packages,
            command=step.command,
        )

    def _audit(
        self,
        step: PlannedCommand,
        options: ExecuteOptions,
        success: bool,
        exit_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        log_command(
            backend=step.backend,
            operation=step.operation.value,
            command=step.argv,
            packages=step.packages,
            context=options.audit_context,
            dry_run=options.dry_run,
            success=success,
            exit_code=exit_code,
            error=error,
        )
