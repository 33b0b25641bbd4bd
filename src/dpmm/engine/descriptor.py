"""Backend descriptors: one package manager's command templates and packages.

All backends share the same execution semantics and differ only in data,
so a single dataclass covers every package manager.

Templates are split into argv with shlex; no shell is involved. The
placeholder `$` must appear as its own word, and is replaced by the
package names as separate arguments:

    install: "sudo apt-get install -y $"
    render(INSTALL, ["jq", "vim"]) -> sudo apt-get install -y jq vim
"""
import logging
import shlex
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..errors import ConfigError
from .schema import Operation, PlannedCommand

logger = logging.getLogger(__name__)

PLACEHOLDER = "$"

KNOWN_KEYS = {
    "install",
    "uninstall",
    "update",
    "upgrade",
    "supports_multi_args",
    "packages",
}


def split_template(template: str) -> list[str]:
    """Split a command template into words, raising ConfigError on bad quoting."""
    try:
        return shlex.split(template)
    except ValueError as e:
        raise ConfigError(f"Cannot parse command template {template!r}: {e}")


@dataclass(frozen=True)
class BackendDescriptor:
    """Immutable definition of one package manager."""
    name: str
    install: str
    uninstall: str
    update: Optional[str] = None
    upgrade: Optional[str] = None
    supports_multi_args: bool = True
    packages: tuple[str, ...] = ()

    def __post_init__(self):
        # Accept any iterable for packages, store as tuple
        object.__setattr__(self, "packages", tuple(self.packages))
        errors = self._validate()
        if errors:
            raise ConfigError(
                f"Invalid manager '{self.name}': " + "; ".join(errors)
            )

    def _validate(self) -> list[str]:
        errors: list[str] = []

        if not self.name:
            errors.append("manager name is empty")

        for op in (Operation.INSTALL, Operation.UNINSTALL):
            template = self.template(op)
            if not template or not template.strip():
                errors.append(f"missing required '{op.value}' command")
                continue
            count = self._placeholder_count(template, errors)
            if count is not None and count != 1:
                errors.append(
                    f"'{op.value}' command must contain the package "
                    f"placeholder '{PLACEHOLDER}' exactly once (found {count})"
                )

        for op in (Operation.UPDATE, Operation.UPGRADE):
            template = self.template(op)
            if template is None:
                continue
            if not template.strip():
                errors.append(f"'{op.value}' command is empty")
                continue
            count = self._placeholder_count(template, errors)
            if count:
                errors.append(
                    f"'{op.value}' command takes no packages but contains "
                    f"the placeholder '{PLACEHOLDER}'"
                )

        seen: set[str] = set()
        for pkg in self.packages:
            if not isinstance(pkg, str) or not pkg.strip():
                errors.append(f"invalid package name {pkg!r}")
            elif pkg in seen:
                errors.append(f"duplicate package '{pkg}'")
            seen.add(pkg)

        return errors

    @staticmethod
    def _placeholder_count(template: str, errors: list[str]) -> Optional[int]:
        try:
            words = split_template(template)
        except ConfigError as e:
            errors.append(str(e))
            return None
        return words.count(PLACEHOLDER)

    @classmethod
    def from_config(cls, name: str, config: dict[str, Any]) -> "BackendDescriptor":
        """
        Build a descriptor from a manager's config mapping.

        Args:
            name: Manager name (from the file identity, not the file body)
            config: Mapping with install/uninstall/update/upgrade,
                supports_multi_args and packages

        Raises:
            ConfigError: If the mapping is malformed
        """
        if not isinstance(config, dict):
            raise ConfigError(f"Manager '{name}' config must be a mapping")

        unknown = set(config) - KNOWN_KEYS - {"name"}
        for key in sorted(unknown):
            logger.warning(f"Manager '{name}': ignoring unknown key '{key}'")

        packages = config.get("packages") or []
        if not isinstance(packages, list):
            raise ConfigError(f"Manager '{name}': 'packages' must be a list")
        for pkg in packages:
            if not isinstance(pkg, str):
                raise ConfigError(
                    f"Manager '{name}': package names must be strings, got {pkg!r}"
                )

        multi = config.get("supports_multi_args", True)
        if not isinstance(multi, bool):
            raise ConfigError(
                f"Manager '{name}': 'supports_multi_args' must be true or false"
            )

        for key in ("install", "uninstall", "update", "upgrade"):
            value = config.get(key)
            if value is not None and not isinstance(value, str):
                raise ConfigError(f"Manager '{name}': '{key}' must be a string")

        return cls(
            name=name,
            install=config.get("install") or "",
            uninstall=config.get("uninstall") or "",
            update=config.get("update"),
            upgrade=config.get("upgrade"),
            supports_multi_args=multi,
            packages=tuple(packages),
        )

    def to_config(self) -> dict[str, Any]:
        """Command templates and flags in manager-file form, without packages."""
        config: dict[str, Any] = {
            "install": self.install,
            "uninstall": self.uninstall,
        }
        if self.update is not None:
            config["update"] = self.update
        if self.upgrade is not None:
            config["upgrade"] = self.upgrade
        config["supports_multi_args"] = self.supports_multi_args
        return config

    def template(self, operation: Operation) -> Optional[str]:
        """Get the command template for an operation (None if unsupported)."""
        return {
            Operation.INSTALL: self.install,
            Operation.UNINSTALL: self.uninstall,
            Operation.UPDATE: self.update,
            Operation.UPGRADE: self.upgrade,
        }[operation]

    def supports(self, operation: Operation) -> bool:
        return bool(self.template(operation))

    def render(
        self,
        operation: Operation,
        package_names: Iterable[str] = (),
    ) -> list[PlannedCommand]:
        """
        Render the commands for an operation.

        Package names are substituted in the order given. Callers pass them
        in declared order so the output is deterministic.

        Returns:
            One command for multi-arg backends, one per package otherwise.
            Empty if there are no packages, or if an update/upgrade
            template is not configured.
        """
        template = self.template(operation)
        if not template:
            return []

        words = split_template(template)

        if not operation.takes_packages:
            return [PlannedCommand(self.name, operation, words)]

        names = list(package_names)
        if not names:
            return []

        idx = words.index(PLACEHOLDER)

        def splice(pkgs: list[str]) -> list[str]:
            return words[:idx] + pkgs + words[idx + 1:]

        if self.supports_multi_args:
            return [PlannedCommand(self.name, operation, splice(names), names)]

        return [
            PlannedCommand(self.name, operation, splice([pkg]), [pkg])
            for pkg in names
        ]
