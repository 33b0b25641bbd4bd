"""Configuration loading and directory layout."""
from .inventory import ManagerInventory
from .paths import cache_dir, config_dir

__all__ = ["ManagerInventory", "cache_dir", "config_dir"]
