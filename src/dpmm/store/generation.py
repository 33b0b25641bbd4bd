"""Generation records: immutable, sequence-numbered package state snapshots."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

import yaml

from ..errors import StoreError

# Full desired/applied state: backend name -> packages in declared order.
# Dict insertion order is the backend processing order.
PackageState = dict[str, tuple[str, ...]]


def normalize_state(state: Mapping[str, Sequence[str]]) -> PackageState:
    """Copy a state mapping into the canonical dict-of-tuples form."""
    return {str(backend): tuple(pkgs) for backend, pkgs in state.items()}


@dataclass(frozen=True)
class Generation:
    """A full snapshot of desired state across all backends.

    `backends` holds each manager's definition (command templates and
    flags, as in its config file) at the time the generation was recorded.
    Records written before definitions were stored have it empty.
    """
    sequence: int
    timestamp: datetime
    state: PackageState
    backends: dict[str, dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "state", normalize_state(self.state))
        object.__setattr__(
            self,
            "backends",
            {str(name): dict(config) for name, config in self.backends.items()},
        )

    @property
    def package_count(self) -> int:
        return sum(len(pkgs) for pkgs in self.state.values())

    def summary(self) -> str:
        """One-line summary, e.g. 'apt: 2 packages, cargo: 1 package'."""
        if not self.state:
            return "no managers"
        parts = []
        for backend, pkgs in self.state.items():
            noun = "package" if len(pkgs) == 1 else "packages"
            parts.append(f"{backend}: {len(pkgs)} {noun}")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "state": {backend: list(pkgs) for backend, pkgs in self.state.items()},
        }
        if self.backends:
            data["backends"] = self.backends
        return data

    def to_yaml(self) -> str:
        """Convert to a YAML document."""
        return yaml.safe_dump(
            self.to_dict(), default_flow_style=False, sort_keys=False
        )

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "Generation":
        """Parse from a YAML document.

        Raises:
            StoreError: If the document is not a valid generation record
        """
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise StoreError(f"Corrupt generation record: {e}")

        if not isinstance(data, dict):
            raise StoreError("Corrupt generation record: not a mapping")

        sequence = data.get("sequence")
        if not isinstance(sequence, int) or isinstance(sequence, bool):
            raise StoreError(f"Corrupt generation record: bad sequence {sequence!r}")

        timestamp = _parse_timestamp(data.get("timestamp"))

        raw_state = data.get("state") or {}
        if not isinstance(raw_state, dict):
            raise StoreError(f"Generation {sequence}: state must be a mapping")

        state: dict[str, tuple[str, ...]] = {}
        for backend, pkgs in raw_state.items():
            pkgs = pkgs or []
            if not isinstance(pkgs, list) or not all(isinstance(p, str) for p in pkgs):
                raise StoreError(
                    f"Generation {sequence}: packages for '{backend}' must be a list of names"
                )
            state[str(backend)] = tuple(pkgs)

        backends = data.get("backends") or {}
        if not isinstance(backends, dict) or not all(
            isinstance(config, dict) for config in backends.values()
        ):
            raise StoreError(
                f"Generation {sequence}: backends must map names to definitions"
            )

        return cls(
            sequence=sequence, timestamp=timestamp, state=state, backends=backends
        )


def _parse_timestamp(value: Any) -> datetime:
    # yaml.safe_load may already have produced a datetime
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value)
        except ValueError:
            raise StoreError(f"Corrupt generation record: bad timestamp {value!r}")
    else:
        raise StoreError(f"Corrupt generation record: bad timestamp {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
