"""Atomic file replacement helpers shared by settings and config rewrites."""

from __future__ import annotations

import time
from contextlib import suppress
from pathlib import Path
from uuid import uuid4


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes next to `path` and replace it, retrying transient failures."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_bytes(data)
            try:
                tmp_path.replace(path)
                return
            except OSError as exc:
                if not _is_retryable_windows_replace_error(exc) or attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()


def atomic_write_text(path: Path, payload: str, *, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, payload.encode(encoding))


def _is_retryable_windows_replace_error(exc: OSError) -> bool:
    """Return whether an atomic replace failure is likely transient on Windows."""
    winerror = getattr(exc, "winerror", None)
    if winerror in {32, 5, 2}:
        return True
    errno = getattr(exc, "errno", None)
    if errno in {13, 16}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text
