"""Audit logging for package manager commands.

Every command dpmm runs (or would run, in dry-run mode) is recorded as one
JSON object per line in a separate audit log file.
"""
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .logging_config import _replace_handlers, _rotating_handler

# JSON lines only; kept out of the console and dpmm.log
audit_logger = logging.getLogger("dpmm.audit")

AUDIT_FILE_NAME = "audit.log"
AUDIT_MAX_BYTES = 10 * 1024 * 1024
AUDIT_BACKUPS = 10


def setup_audit_logging(log_dir: Path) -> Path:
    """Point the audit logger at <log_dir>/audit.log.

    Returns:
        Path of the audit log file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    audit_file = log_dir / AUDIT_FILE_NAME

    audit_logger.setLevel(logging.INFO)
    audit_logger.propagate = False
    _replace_handlers(
        audit_logger,
        _rotating_handler(audit_file, "%(message)s", AUDIT_MAX_BYTES, AUDIT_BACKUPS),
    )
    return audit_file


@dataclass
class CommandRecord:
    """Record of one package manager invocation."""
    timestamp: str
    backend: str
    operation: str  # install, uninstall, update, upgrade
    command: list[str]
    packages: list[str] = field(default_factory=list)
    context: str = ""  # switch, rollback, update, upgrade
    dry_run: bool = False
    success: bool = False
    exit_code: Optional[int] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "CommandRecord":
        """Parse from JSON string."""
        data = json.loads(json_str)
        return cls(**data)


def log_command(
    backend: str,
    operation: str,
    command: list[str],
    packages: Optional[list[str]] = None,
    context: str = "",
    dry_run: bool = False,
    success: bool = False,
    exit_code: Optional[int] = None,
    error: Optional[str] = None,
) -> CommandRecord:
    """Log a command to the audit log.

    Returns:
        The CommandRecord that was logged
    """
    record = CommandRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        backend=backend,
        operation=operation,
        command=list(command),
        packages=list(packages or []),
        context=context,
        dry_run=dry_run,
        success=success,
        exit_code=exit_code,
        error=error,
    )

    audit_logger.info(record.to_json())

    return record


def get_recent_changes(
    log_file: Path,
    backend: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[CommandRecord]:
    """Read recent commands from the audit log.

    Args:
        log_file: Path to audit log
        backend: Filter by backend name
        operation: Filter by operation type
        limit: Maximum number of records to return

    Returns:
        List of CommandRecords, most recent first
    """
    log_file = Path(log_file)
    if not log_file.exists():
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = CommandRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if backend and record.backend != backend:
                continue
            if operation and record.operation != operation:
                continue

            records.append(record)

    if limit <= 0:
        return []
    return list(reversed(records[-limit:]))
