"""Package manager inventory loaded from YAML configuration.

Layout of the config directory:

```yaml
# dpmm.yaml - which managers are active, in processing order
managers:
  - apt
  - cargo
defaults:            # optional, merged into every manager file
  supports_multi_args: true
```

```yaml
# apt.yaml - one file per listed manager
update: sudo apt-get update
upgrade: sudo apt-get upgrade -y
install: sudo apt-get install -y $
uninstall: sudo apt-get remove -y $
packages:
  - jq
  - vim
```
"""
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import yaml

from ..engine.descriptor import BackendDescriptor
from ..errors import ConfigError
from ..utils.fileio import atomic_write
from .paths import config_dir as default_config_dir

logger = logging.getLogger(__name__)

MAIN_CONFIG = "dpmm.yaml"


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}")


def _check_manager_name(name: str) -> None:
    if os.sep in name or name.startswith("."):
        raise ConfigError(f"Invalid manager name: {name!r}")


class ManagerInventory:
    """Loads dpmm.yaml and the per-manager files into BackendDescriptors."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self._config: dict = {}
        self._descriptors: dict[str, BackendDescriptor] = {}
        self._load_config()

    @property
    def main_config_path(self) -> Path:
        return self.config_dir / MAIN_CONFIG

    def manager_path(self, name: str) -> Path:
        return self.config_dir / f"{name}.yaml"

    def _load_config(self) -> None:
        """Load dpmm.yaml and every manager file it lists."""
        config = _read_yaml(self.main_config_path)
        if not config:
            raise ConfigError(f"Empty {self.main_config_path}")
        if not isinstance(config, dict):
            raise ConfigError(f"{self.main_config_path} must be a mapping")
        self._config = config

        managers = config.get("managers")
        if not managers:
            raise ConfigError(f"No managers declared in {self.main_config_path}")
        if not isinstance(managers, list) or not all(
            isinstance(m, str) and m for m in managers
        ):
            raise ConfigError("'managers' must be a list of manager names")

        duplicates = sorted({m for m in managers if managers.count(m) > 1})
        if duplicates:
            raise ConfigError(f"Duplicate managers: {', '.join(duplicates)}")

        defaults = config.get("defaults") or {}
        if not isinstance(defaults, dict):
            raise ConfigError("'defaults' must be a mapping")

        for name in managers:
            _check_manager_name(name)

            manager_config = _read_yaml(self.manager_path(name))
            if manager_config is None:
                manager_config = {}
            if not isinstance(manager_config, dict):
                raise ConfigError(f"{self.manager_path(name)} must be a mapping")

            # Merge defaults
            for key, value in defaults.items():
                if key not in manager_config:
                    manager_config[key] = value

            self._descriptors[name] = BackendDescriptor.from_config(
                name, manager_config
            )

        logger.debug(
            f"Loaded {len(self._descriptors)} managers from {self.config_dir}"
        )

    def get_manager_names(self) -> list[str]:
        """Manager names in processing order."""
        return list(self._descriptors)

    def get_descriptor(self, name: str) -> BackendDescriptor:
        if name not in self._descriptors:
            raise KeyError(f"Unknown manager: {name}")
        return self._descriptors[name]

    def get_descriptors(self) -> list[BackendDescriptor]:
        """All descriptors in processing order."""
        return list(self._descriptors.values())

    def desired_state(self) -> dict[str, tuple[str, ...]]:
        """The declared package state, backend -> packages."""
        return {d.name: d.packages for d in self._descriptors.values()}

    # === Write-back ===

    def restore(
        self,
        state: Mapping[str, Sequence[str]],
        backend_configs: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> list[str]:
        """
        Rewrite the config files to match a restored generation.

        Each manager file gets the generation's `packages` list; other keys
        are preserved (comments are not). A manager that is no longer
        configured gets a new file built from its recorded definition.
        The `managers` list in dpmm.yaml is rewritten to the generation's
        managers, in its order.

        Args:
            state: Restored package state, backend -> packages
            backend_configs: Recorded manager definitions, used for managers
                that are not configured any more

        Returns:
            Names of the files that were rewritten
        """
        backend_configs = backend_configs or {}
        updated = []
        managers = []

        for name, packages in state.items():
            if name not in self._descriptors:
                _check_manager_name(name)
            path = self.manager_path(name)
            if name in self._descriptors or path.exists():
                data = _read_yaml(path) or {}
                if not isinstance(data, dict):
                    raise ConfigError(f"{path} must be a mapping")
            elif name in backend_configs:
                data = dict(backend_configs[name])
            else:
                logger.warning(
                    f"Not writing packages for unconfigured manager '{name}'"
                )
                continue

            managers.append(name)
            if path.exists() and list(data.get("packages") or []) == list(packages):
                continue

            data["packages"] = list(packages)
            self._write_yaml(path, data)
            updated.append(path.name)
            logger.info(f"Updated packages in {path}")

        if not managers:
            logger.warning(f"No managers to write, leaving {MAIN_CONFIG} unchanged")
        elif managers != self.get_manager_names():
            self._config["managers"] = managers
            self._write_yaml(self.main_config_path, self._config)
            updated.append(MAIN_CONFIG)
            logger.info(f"Set managers in {self.main_config_path}: {', '.join(managers)}")

        return updated

    def _write_yaml(self, path: Path, data: dict) -> None:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        try:
            atomic_write(path, content)
        except OSError as e:
            raise ConfigError(f"Cannot write {path}: {e}")
