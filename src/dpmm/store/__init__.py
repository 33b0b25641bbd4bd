"""Generation Store package for the history of applied package states.

This package provides:
- GenerationStore: append-only, file-per-generation history
- Generation: an immutable snapshot with sequence number and timestamp
"""

from .generation import Generation, PackageState, normalize_state
from .store import GenerationStore, DEFAULT_GC_KEEP

__all__ = [
    "Generation",
    "normalize_state",
    "PackageState",
    "GenerationStore",
    "DEFAULT_GC_KEEP",
]
