"""Atomic file replacement shared by the generation store and config write-back."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .retry import with_retry

logger = logging.getLogger(__name__)


@with_retry()
def _replace(src: str, dst: Path) -> None:
    os.replace(src, dst)


def atomic_write(path: Path, content: str) -> None:
    """
    Write content to path so readers see either the old file or the whole new one.

    The content goes to a hidden temp file in the same directory, is
    fsynced, then renamed over path. Transient rename errors are retried.

    Raises:
        OSError: If the file could not be written; no temp file is left behind
    """
    path = Path(path)
    tmp_name: Optional[str] = None
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        _replace(tmp_name, path)
        tmp_name = None
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning(f"Could not remove temp file {tmp_name}")
