"""Runtime configuration normalization helpers.

These helpers keep CLI flag and persisted setting interpretation deterministic
across entrypoints.
"""

from __future__ import annotations

import math

PROBE_TIMEOUT_MIN_S = 0.1
PROBE_TIMEOUT_MAX_S = 10.0
STARTUP_GRACE_MAX_S = 5.0
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_log_level(
    *, verbose: bool, quiet: bool, persisted: str | None = None
) -> str:
    """Resolve effective log level from CLI flags and the persisted setting.

    Precedence is deterministic: --quiet overrides --verbose, and either flag
    overrides the persisted level. Unknown persisted names fall back to INFO.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    if persisted is not None and persisted.strip().upper() in LOG_LEVELS:
        return persisted.strip().upper()
    return "INFO"


def resolve_auto_run(cli_value: bool | None, persisted: bool) -> bool:
    """Return the effective auto-run flag; an explicit CLI flag wins."""
    if cli_value is None:
        return persisted
    return cli_value


def normalize_probe_timeout_s(value: float) -> float:
    """Clamp per-probe timeout to a short bounded range."""
    if not math.isfinite(value):
        return 1.0
    return max(PROBE_TIMEOUT_MIN_S, min(float(value), PROBE_TIMEOUT_MAX_S))


def normalize_startup_grace_s(value: float) -> float:
    """Clamp listener bind grace interval to [0, STARTUP_GRACE_MAX_S]."""
    if not math.isfinite(value):
        return 0.5
    return max(0.0, min(float(value), STARTUP_GRACE_MAX_S))
