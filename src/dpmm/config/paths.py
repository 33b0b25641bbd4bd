"""Locate the dpmm config and cache directories."""
import os
import sys
from pathlib import Path

if sys.platform == "win32":
    CONFIG_HOME = "APPDATA"
    CACHE_HOME = "LOCALAPPDATA"
else:
    CONFIG_HOME = "XDG_CONFIG_HOME"
    CACHE_HOME = "XDG_CACHE_HOME"

APP_NAME = "dpmm"


def config_dir() -> Path:
    """$DPMM_CONFIG_DIR, else $XDG_CONFIG_HOME/dpmm, else ~/.config/dpmm."""
    override = os.environ.get("DPMM_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    base = os.environ.get(CONFIG_HOME)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def cache_dir() -> Path:
    """$DPMM_CACHE_DIR, else $XDG_CACHE_HOME/dpmm, else ~/.cache/dpmm."""
    override = os.environ.get("DPMM_CACHE_DIR")
    if override:
        return Path(override).expanduser()
    base = os.environ.get(CACHE_HOME)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / ".cache" / APP_NAME
