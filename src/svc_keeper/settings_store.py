"""JSON persistence for user-facing keeper settings.

The store is intentionally tolerant of invalid/missing values so upgrades and
partial/corrupt writes degrade to safe defaults instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .runtime_config import normalize_probe_timeout_s, normalize_startup_grace_s
from .utils.atomic_io import atomic_write_text

logger = logging.getLogger(__name__)

DEFAULT_PROBE_URL = "http://127.0.0.1:5244/ping"


@dataclass(frozen=True)
class KeeperSettings:
    """Persisted settings loaded at startup and edited via `svc-keeper settings`."""

    auto_run: bool = False
    backup_restore: bool = False
    service_backend: str = "subprocess"
    server_binary: str = "alist"
    backup_dir: str | None = None
    probe_url: str = DEFAULT_PROBE_URL
    probe_timeout_s: float = 1.0
    startup_grace_s: float = 0.5
    log_level: str = "INFO"


def _coerce_settings(data: dict[str, Any]) -> KeeperSettings:
    """Coerce untyped JSON object into validated `KeeperSettings`.

    This doubles as lightweight schema evolution handling for older keys
    (for example `autoRun` -> `auto_run`).
    """

    def _bool_or_default(value: Any, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        return default

    def _str_or_default(value: Any, default: str) -> str:
        if isinstance(value, str) and value.strip():
            return value
        return default

    def _float_or_default(value: Any, default: float) -> float:
        if isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            normalized = float(value)
            if math.isfinite(normalized):
                return normalized
        return default

    auto_run_raw = data.get("auto_run", data.get("autoRun"))
    backup_raw = data.get("backup_restore", data.get("iCloudSync"))
    backup_dir = data.get("backup_dir")
    return KeeperSettings(
        auto_run=_bool_or_default(auto_run_raw, False),
        backup_restore=_bool_or_default(backup_raw, False),
        service_backend=_str_or_default(data.get("service_backend"), "subprocess"),
        server_binary=_str_or_default(data.get("server_binary"), "alist"),
        backup_dir=backup_dir
        if isinstance(backup_dir, str) and backup_dir.strip()
        else None,
        probe_url=_str_or_default(data.get("probe_url"), DEFAULT_PROBE_URL),
        probe_timeout_s=normalize_probe_timeout_s(
            _float_or_default(data.get("probe_timeout_s"), 1.0)
        ),
        startup_grace_s=normalize_startup_grace_s(
            _float_or_default(data.get("startup_grace_s"), 0.5)
        ),
        log_level=_str_or_default(data.get("log_level"), "INFO"),
    )


def load_settings_with_notice(path: Path) -> tuple[KeeperSettings, str | None]:
    """Load settings and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Settings file missing at %s; using defaults.", path)
        return KeeperSettings(), None
    except OSError as exc:
        logger.warning(
            "Failed to read settings file %s: %s; using defaults.", path, exc
        )
        return (
            KeeperSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file is unreadable due to permissions or "
            "IO issues.\n"
            f"Next step: verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Settings file at %s is invalid JSON; using defaults.", path)
        return (
            KeeperSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file is corrupt or partially written.\n"
            f"Next step: remove or repair '{path}' and restart.",
        )

    if not isinstance(data, dict):
        logger.warning(
            "Settings file at %s is not a JSON object; using defaults.", path
        )
        return (
            KeeperSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file format is invalid for this version.\n"
            f"Next step: remove '{path}' and restart.",
        )

    return _coerce_settings(data), None


def save_settings(path: Path, settings: KeeperSettings) -> None:
    """Persist settings atomically to disk via write-then-replace."""
    payload = json.dumps(asdict(settings), indent=2, sort_keys=True)
    atomic_write_text(path, payload)


def apply_setting_assignments(
    settings: KeeperSettings, assignments: list[str]
) -> KeeperSettings:
    """Return `settings` updated from `key=value` strings.

    Values are read as JSON when they parse (`true`, `2.5`, `null`) and as
    plain strings otherwise, then pass through the same coercion as loading.
    """
    data = asdict(settings)
    for assignment in assignments:
        key, sep, raw = assignment.partition("=")
        key = key.strip()
        if not sep or key not in data:
            raise ValueError(f"Unknown setting assignment: {assignment!r}")
        try:
            data[key] = json.loads(raw)
        except json.JSONDecodeError:
            data[key] = raw
    return _coerce_settings(data)
