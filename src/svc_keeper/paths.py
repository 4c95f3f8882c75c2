"""Path helpers for per-user app data and the supervised storage root."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from platformdirs import AppDirs

DEFAULT_APP_NAME = "svc-keeper"
STORAGE_ROOT_ENV = "SVC_KEEPER_STORAGE_ROOT"
CONFIG_DOCUMENT_NAME = "config.json"


@lru_cache(maxsize=4)
def get_app_dirs(app_name: str = DEFAULT_APP_NAME) -> AppDirs:
    """Return platform-specific app directories."""
    return AppDirs(app_name, appauthor=False)


def _ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def data_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return the per-user data directory, creating it if needed."""
    return _ensure_dir(Path(get_app_dirs(app_name).user_data_dir))


def config_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return the per-user config directory, creating it if needed."""
    return _ensure_dir(Path(get_app_dirs(app_name).user_config_dir))


def log_dir(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return the per-user log directory, creating it if needed."""
    return _ensure_dir(data_dir(app_name) / "logs")


def settings_path(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return the JSON settings file path."""
    return config_dir(app_name) / "settings.json"


def storage_root(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return the current storage root of the supervised service.

    The environment may relocate this directory between installs, so it is
    resolved on every call and never cached.
    """
    override = os.environ.get(STORAGE_ROOT_ENV, "").strip()
    if override:
        return Path(override)
    return Path(get_app_dirs(app_name).user_data_dir) / "storage"


def config_document_path(
    root: Path | None = None, name: str = CONFIG_DOCUMENT_NAME
) -> Path:
    """Return the service config document path under the storage root."""
    return (root if root is not None else storage_root()) / name
