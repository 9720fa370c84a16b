"""Per-user config and data directories."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Literal

APP_NAME = "stepwise"

_DirKind = Literal["config", "data"]

# kind -> (override env var, Windows base env var, Windows fallback, XDG env var, XDG fallback)
_LOCATIONS: dict[str, tuple[str, str, tuple[str, ...], str, tuple[str, ...]]] = {
    "config": ("STEPWISE_CONFIG_DIR", "APPDATA", ("AppData", "Roaming"), "XDG_CONFIG_HOME", (".config",)),
    "data": ("STEPWISE_DATA_DIR", "LOCALAPPDATA", ("AppData", "Local"), "XDG_DATA_HOME", (".local", "share")),
}


def get_platform() -> str:
    if sys.platform == "win32":
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


def _user_dir(kind: _DirKind) -> Path:
    override, win_env, win_default, xdg_env, xdg_default = _LOCATIONS[kind]
    if os.environ.get(override):
        return Path(os.environ[override])

    platform = get_platform()
    if platform == "windows":
        return Path(os.environ.get(win_env) or Path.home().joinpath(*win_default)) / APP_NAME
    if platform == "macos":
        # config and data share one directory on macOS
        return Path.home() / "Library" / "Application Support" / APP_NAME
    return Path(os.environ.get(xdg_env) or Path.home().joinpath(*xdg_default)) / APP_NAME


def get_config_dir() -> Path:
    """Where ``config.yaml`` is looked up when no path is given."""
    return _user_dir("config")


def get_data_dir() -> Path:
    """Default home of the session database."""
    return _user_dir("data")
