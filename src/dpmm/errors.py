"""Error types shared by the config loader, generation store and reconciler."""
from typing import Optional, Sequence


class DpmmError(Exception):
    """Base class for all dpmm errors."""
    pass


class ConfigError(DpmmError):
    """Malformed configuration or backend descriptor."""
    pass


class InvalidTarget(DpmmError):
    """update/upgrade requested without a valid manager name or `all`."""
    pass


class NotFound(DpmmError):
    """Rollback target generation does not exist (or is already current)."""
    pass


class StoreError(DpmmError):
    """Generation history could not be read or written."""
    pass


class IOFailure(StoreError):
    """Persisting a generation failed; the store is left unchanged."""
    pass


class ExecutionFailure(DpmmError):
    """A package manager command exited non-zero (or could not be started)."""

    def __init__(
        self,
        backend: str,
        operation: str,
        exit_info: str,
        packages: Optional[Sequence[str]] = None,
        command: str = "",
    ):
        self.backend = backend
        self.operation = operation
        self.exit_info = exit_info
        self.packages = list(packages or [])
        self.command = command

        message = f"{operation} failed for {backend}: {exit_info}"
        if self.packages:
            message += f" (packages: {', '.join(self.packages)})"
        super().__init__(message)
