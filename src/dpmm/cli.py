#!/usr/bin/env python3
"""dpmm command line interface.

Usage:
    dpmm [--dry-run] [-v] COMMAND

Commands:
    switch      Reconcile installed packages with the configuration
    list        List recorded generations
    rollback    Restore the packages of a previous generation
    update      Run a manager's update command (or `all`)
    upgrade     Run a manager's upgrade command (or `all`)
    gc          Delete old generations
    audit       Show recently run commands

Environment variables:
    DPMM_CONFIG_DIR     Config directory (default: ~/.config/dpmm)
    DPMM_CACHE_DIR      History/log directory (default: ~/.cache/dpmm)
    DPMM_LOG_LEVEL      Console log level (default: INFO)
"""
import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config import ManagerInventory, cache_dir, config_dir
from .engine import Operation, Reconciler, SwitchReport
from .errors import ConfigError, StoreError
from .store import DEFAULT_GC_KEEP, GenerationStore
from .utils.audit_log import get_recent_changes, setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

GENERATION_ARG_RE = re.compile(r"^(?:generation_)?(\d+)$")


def generation_arg(value: str) -> int:
    """Accept `7` or `generation_7`."""
    match = GENERATION_ARG_RE.match(value.strip())
    if not match:
        raise argparse.ArgumentTypeError(f"invalid generation: {value!r}")
    return int(match.group(1))


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dpmm",
        description="Declarative meta-manager for package managers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Preview what a switch would run
    dpmm --dry-run switch

    # Apply the configuration, refreshing package lists first
    dpmm switch --update

    # Go back to the previous generation
    dpmm rollback
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        help="Print the commands that would run without running them",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        help="Config directory (default: $DPMM_CONFIG_DIR or ~/.config/dpmm)",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        help="History directory (default: $DPMM_CACHE_DIR or ~/.cache/dpmm)",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    switch = sub.add_parser("switch", help="Switch to the new configuration")
    switch.add_argument("--update", action="store_true", help="Run update commands first")
    switch.add_argument("--upgrade", action="store_true", help="Run upgrade commands last")

    sub.add_parser("list", help="List dpmm generations")

    rollback = sub.add_parser("rollback", help="Roll back to a previous generation")
    rollback.add_argument(
        "generation",
        nargs="?",
        type=generation_arg,
        help="Generation number (default: the one before the current)",
    )
    rollback.add_argument(
        "--keep-config",
        action="store_true",
        help="Do not rewrite the package lists in the manager config files",
    )

    for name, verb in (("update", "Update package lists"), ("upgrade", "Upgrade packages")):
        cmd = sub.add_parser(name, help=verb)
        cmd.add_argument(
            "manager",
            nargs="?",
            help="Manager name, or `all` for every manager",
        )

    gc = sub.add_parser("gc", help="Delete old generations")
    gc.add_argument(
        "--keep",
        type=positive_int,
        default=DEFAULT_GC_KEEP,
        help=f"Number of generations to keep (default: {DEFAULT_GC_KEEP})",
    )

    audit = sub.add_parser("audit", help="Show recently run commands")
    audit.add_argument("--manager", help="Only show commands for this manager")
    audit.add_argument("--limit", type=positive_int, default=20, help="Maximum entries")

    return parser


def print_report(report: SwitchReport) -> None:
    """Print a run report to stdout."""
    for outcome in report.backends:
        if outcome.nothing_to_resolve and report.operation in ("switch", "rollback"):
            print(f"Nothing to resolve with {outcome.backend}!")
            continue
        for command in outcome.commands:
            prefix = "[DRY-RUN] " if report.dry_run else ""
            print(f"{prefix}{outcome.backend}: {command}")

    if report.planned_generation is not None and report.planned_state is not None:
        print(f"Would write generation_{report.planned_generation}:")
        for backend, packages in report.planned_state.items():
            print(f"  {backend}: {', '.join(packages) if packages else '(none)'}")

    if report.generation is not None:
        print(f"Recorded generation {report.generation}")

    for warning in report.warnings:
        print(f"warning: {warning}", file=sys.stderr)

    if report.error is not None:
        print(f"error: {report.error}", file=sys.stderr)


def cmd_list(store: GenerationStore) -> int:
    reconciler = Reconciler(store)
    entries = reconciler.list_generations()
    if not entries:
        print("No generations recorded yet")
        return 0

    for entry in entries:
        local = entry["timestamp"].astimezone()
        marker = "  (current)" if entry["current"] else ""
        print(
            f"generation_{entry['sequence']}\t\t{local.date()}\t\t"
            f"{local.strftime('%H:%M:%S')}\t\t{entry['summary']}{marker}"
        )
    return 0


def cmd_gc(store: GenerationStore, keep: int, dry_run: bool) -> int:
    seqs = store.sequences()
    doomed = seqs[:-keep] if len(seqs) > keep else []
    if dry_run:
        for seq in doomed:
            print(f"[DRY-RUN] would delete generation_{seq}")
        return 0

    removed = store.gc(keep)
    for seq in removed:
        print(f"Deleted generation_{seq}")
    if not removed:
        print("Nothing to delete")
    return 0


def cmd_audit(cache: Path, manager: Optional[str], limit: int) -> int:
    records = get_recent_changes(cache / "audit.log", backend=manager, limit=limit)
    for record in records:
        status = "dry-run" if record.dry_run else ("ok" if record.success else "FAILED")
        print(
            f"{record.timestamp}  {record.backend:10s} {record.operation:10s} "
            f"{status:8s} {' '.join(record.command)}"
        )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the dpmm CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = args.config_dir or config_dir()
    cache = args.cache_dir or cache_dir()

    setup_logging(cache, level=logging.DEBUG if args.verbose else None)
    setup_audit_logging(cache)

    store = GenerationStore(cache)

    try:
        if args.command == "list":
            return cmd_list(store)
        if args.command == "gc":
            return cmd_gc(store, args.keep, args.dry_run)
        if args.command == "audit":
            return cmd_audit(cache, args.manager, args.limit)

        inventory = ManagerInventory(config)
        reconciler = Reconciler(store)
        backends = inventory.get_descriptors()

        if args.command == "switch":
            report = reconciler.switch(
                backends,
                dry_run=args.dry_run,
                update=args.update,
                upgrade=args.upgrade,
            )
        elif args.command == "rollback":
            report = reconciler.rollback(
                backends, target=args.generation, dry_run=args.dry_run
            )
            if report.success and report.generation is not None and not args.keep_config:
                try:
                    restored = store.get(report.generation)
                    if restored is not None:
                        inventory.restore(restored.state, restored.backends)
                except (ConfigError, StoreError) as e:
                    report.warnings.append(f"Could not update the config files: {e}")
        else:
            report = reconciler.update_or_upgrade(
                backends,
                target=args.manager,
                kind=Operation(args.command),
                dry_run=args.dry_run,
            )
    except (ConfigError, StoreError) as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130

    print_report(report)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
