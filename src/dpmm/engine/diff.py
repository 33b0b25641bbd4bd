"""Diff engine for calculating changes between two package states.

Computes, per backend, the packages to install and to uninstall.
"""
from typing import Mapping, Sequence

from .schema import BackendDiff, DiffResult, PackageState


class DiffEngine:
    """Calculate differences between a previous and a desired state."""

    def calculate(
        self,
        previous: Mapping[str, Sequence[str]],
        desired: Mapping[str, Sequence[str]],
    ) -> DiffResult:
        """
        Calculate the per-backend diff from previous to desired.

        Backends are reported in desired order. A backend missing from
        previous is diffed against an empty set. A backend missing from
        desired is only listed in orphaned_backends, never uninstalled.

        Args:
            previous: Last applied state (empty mapping on first switch)
            desired: Desired state

        Returns:
            DiffResult with one BackendDiff per desired backend
        """
        result = DiffResult()

        for backend, desired_pkgs in desired.items():
            previous_pkgs = previous.get(backend, ())
            result.backend_diffs.append(
                self._diff_backend(backend, previous_pkgs, desired_pkgs)
            )

        result.orphaned_backends = [
            backend for backend in previous if backend not in desired
        ]

        return result

    def _diff_backend(
        self,
        backend: str,
        previous: Sequence[str],
        desired: Sequence[str],
    ) -> BackendDiff:
        """
        Set difference in both directions, keeping input order.

        to_install follows desired order, to_uninstall follows previous order.
        """
        previous_set = set(previous)
        desired_set = set(desired)

        return BackendDiff(
            backend=backend,
            to_install=_ordered_unique(p for p in desired if p not in previous_set),
            to_uninstall=_ordered_unique(p for p in previous if p not in desired_set),
        )


def _ordered_unique(items) -> list[str]:
    return list(dict.fromkeys(items))


def same_state(a: PackageState, b: PackageState) -> bool:
    """Exact snapshot equality, including backend and package order."""
    return list(a.items()) == list(b.items())


def summarize_diff(diff: DiffResult) -> str:
    """
    Create a human-readable summary of a diff.

    Useful for dry-run output and logging.
    """
    if diff.no_change and not diff.orphaned_backends:
        return "Nothing to resolve - installed packages match the desired state"

    lines = [f"Changes to apply ({diff.total_changes} total):"]

    for change in diff.backend_diffs:
        if change.no_change:
            lines.append(f"  [=] {change.backend}: nothing to resolve")
            continue
        lines.append(f"  [~] {change.backend}")
        if change.to_uninstall:
            lines.append(f"      Uninstall: {', '.join(change.to_uninstall)}")
        if change.to_install:
            lines.append(f"      Install: {', '.join(change.to_install)}")

    for backend in diff.orphaned_backends:
        lines.append(
            f"  [!] {backend}: no longer configured, packages left installed"
        )

    return "\n".join(lines)
