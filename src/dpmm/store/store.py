"""Generation Store: append-only history of applied package states.

Handles:
- One YAML file per generation, named by sequence number
- Atomic appends (temp file + fsync + rename)
- Sequence assignment
- Pruning old generations

Directory structure managed:
    <cache dir>/
    └── generations/
        ├── generation_1.yaml
        ├── generation_2.yaml
        └── ...
"""
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from ..errors import IOFailure, StoreError
from ..utils.fileio import atomic_write
from .generation import Generation

logger = logging.getLogger(__name__)

# No leading zeros: the file name must round-trip through path_for()
GENERATION_FILE_RE = re.compile(r"^generation_(0|[1-9]\d*)\.yaml$")

DEFAULT_GC_KEEP = 10


class GenerationStore:
    """
    Manages the generation history.

    Generations are immutable once written. Sequence numbers are assigned
    here, start at 1, and are always latest + 1, so they are never reused
    even after old generations are pruned.
    """

    def __init__(self, base_dir: Path):
        """
        Initialize the store.

        Args:
            base_dir: dpmm cache directory; history lives in base_dir/generations
        """
        self.base_dir = Path(base_dir)
        self.generations_dir = self.base_dir / "generations"

    def _ensure_directories(self) -> None:
        try:
            self.generations_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create {self.generations_dir}: {e}")

    def path_for(self, sequence: int) -> Path:
        return self.generations_dir / f"generation_{sequence}.yaml"

    # === Reading ===

    def sequences(self) -> list[int]:
        """All stored sequence numbers, ascending."""
        if not self.generations_dir.is_dir():
            return []

        try:
            names = os.listdir(self.generations_dir)
        except OSError as e:
            raise StoreError(f"Cannot read {self.generations_dir}: {e}")

        found = []
        for name in names:
            match = GENERATION_FILE_RE.match(name)
            if match:
                found.append(int(match.group(1)))
        return sorted(found)

    def get(self, sequence: int) -> Optional[Generation]:
        """
        Get a generation by sequence number.

        Returns None if it does not exist.

        Raises:
            StoreError: If the record exists but cannot be read
        """
        path = self.path_for(sequence)
        if not path.exists():
            return None

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Cannot read {path}: {e}")

        generation = Generation.from_yaml(content)
        if generation.sequence != sequence:
            raise StoreError(
                f"{path.name} records sequence {generation.sequence}"
            )
        return generation

    def latest(self) -> Optional[Generation]:
        """The current generation (highest sequence), or None if empty."""
        seqs = self.sequences()
        if not seqs:
            return None
        return self.get(seqs[-1])

    def next_sequence(self) -> int:
        seqs = self.sequences()
        return seqs[-1] + 1 if seqs else 1

    # === Writing ===

    def append(
        self,
        state: Mapping[str, Sequence[str]],
        timestamp: Optional[datetime] = None,
        backends: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> Generation:
        """
        Record a new generation.

        Args:
            state: Full desired state snapshot
            timestamp: Creation time (default: now, UTC)
            backends: Manager definitions (command templates and flags) for
                the managers in state, so the generation can be restored
                after a manager is removed from the config

        Returns:
            The stored Generation with its assigned sequence

        Raises:
            IOFailure: If the record could not be persisted. Prior
                generations are untouched and no partial file is visible.
        """
        self._ensure_directories()

        generation = Generation(
            sequence=self.next_sequence(),
            timestamp=timestamp or datetime.now(timezone.utc),
            state=dict(state),
            backends=dict(backends or {}),
        )
        path = self.path_for(generation.sequence)

        if path.exists():
            raise IOFailure(f"{path.name} already exists")

        try:
            atomic_write(path, generation.to_yaml())
        except OSError as e:
            raise IOFailure(f"Failed to write {path.name}: {e}")

        logger.info(
            f"Recorded generation {generation.sequence} ({generation.summary()})"
        )
        return generation

    def gc(self, keep: int = DEFAULT_GC_KEEP) -> list[int]:
        """
        Delete all but the newest `keep` generations.

        Args:
            keep: Number of generations to keep (at least 1)

        Returns:
            Sequence numbers that were removed, ascending
        """
        if keep < 1:
            raise ValueError("keep must be at least 1")

        seqs = self.sequences()
        doomed = seqs[:-keep] if len(seqs) > keep else []

        removed = []
        for seq in doomed:
            try:
                self.path_for(seq).unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                raise IOFailure(f"Failed to remove generation {seq}: {e}")
            removed.append(seq)

        if removed:
            logger.info(f"Removed {len(removed)} old generation(s)")
        return removed

    # Defined last: the name shadows the builtin in later annotations
    def list(self) -> list[Generation]:
        """All generations, ascending by sequence."""
        generations = []
        for seq in self.sequences():
            generation = self.get(seq)
            if generation is not None:
                generations.append(generation)
        return generations
