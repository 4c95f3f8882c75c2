"""Runtime diagnostics for the server binary, storage root and config document."""

from __future__ import annotations

import importlib
import json
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .paths import config_document_path
from .services.path_migrator import split_storage_root
from .services.subprocess_process import resolve_server_binary

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One environment readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    backend: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(backend: str, *, binary: str, root: Path) -> DoctorReport:
    """Run configured diagnostics for selected backend mode."""
    checks = [
        probe_aiohttp(),
        probe_server_binary(binary, required=backend == "subprocess"),
        probe_storage_root(root),
        probe_config_document(root),
    ]
    return DoctorReport(backend=backend, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"svc-keeper doctor (backend={report.backend})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<13} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_aiohttp() -> DoctorCheck:
    """Verify the HTTP client used by the readiness probe is importable."""
    try:
        module = importlib.import_module("aiohttp")
    except Exception as exc:
        return DoctorCheck(
            name="aiohttp",
            status="missing",
            required=True,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install Python dependencies (pip install svc-keeper).",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(name="aiohttp", status="ok", required=True, detail=detail)


def probe_server_binary(binary: str, *, required: bool) -> DoctorCheck:
    """Verify the server binary is present and answers `version`."""
    resolved = resolve_server_binary(binary)
    if resolved is None:
        return DoctorCheck(
            name="server",
            status="missing",
            required=required,
            detail=f"'{binary}' not found on PATH or as a file",
            hint="Install the server binary or set server_binary in settings.",
        )
    try:
        proc = subprocess.run(
            [resolved, "version"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except Exception as exc:
        return DoctorCheck(
            name="server",
            status="error",
            required=required,
            detail=f"launch failed ({exc.__class__.__name__})",
            hint="Reinstall the server binary and verify PATH.",
        )
    if proc.returncode != 0:
        stderr_first = ""
        if proc.stderr:
            stderr_first = proc.stderr.strip().splitlines()[0]
        detail = f"'{binary} version' failed (exit={proc.returncode})" + (
            f": {stderr_first}" if stderr_first else ""
        )
        return DoctorCheck(
            name="server",
            status="error",
            required=required,
            detail=detail,
            hint="Reinstall the server binary and verify PATH.",
        )
    first_line = ""
    if proc.stdout:
        first_line = proc.stdout.strip().splitlines()[0]
    detail = first_line or f"binary found at {resolved}"
    return DoctorCheck(name="server", status="ok", required=required, detail=detail)


def probe_storage_root(root: Path) -> DoctorCheck:
    """Verify the storage root is a writable directory."""
    if not root.exists():
        return DoctorCheck(
            name="storage root",
            status="missing",
            required=False,
            detail=f"{root} does not exist yet",
            hint="It is created on first run; check the parent is writable.",
        )
    if not root.is_dir() or not os.access(root, os.W_OK):
        return DoctorCheck(
            name="storage root",
            status="error",
            required=True,
            detail=f"{root} is not a writable directory",
            hint="Fix permissions or point SVC_KEEPER_STORAGE_ROOT elsewhere.",
        )
    shape = split_storage_root(root.as_posix())
    detail = (
        f"{root} (identifier {shape.identifier})"
        if shape is not None
        else f"{root} (no UUID segment; path migration disabled)"
    )
    return DoctorCheck(name="storage root", status="ok", required=True, detail=detail)


def probe_config_document(root: Path) -> DoctorCheck:
    """Verify the service config document, when present, is readable JSON."""
    document = config_document_path(root)
    if not document.exists():
        return DoctorCheck(
            name="config",
            status="ok",
            required=False,
            detail="not created yet (first run)",
        )
    try:
        json.loads(document.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return DoctorCheck(
            name="config",
            status="error",
            required=False,
            detail=f"{document} unreadable ({exc.__class__.__name__})",
            hint="Repair or remove the config document; the server recreates it.",
        )
    return DoctorCheck(name="config", status="ok", required=False, detail=str(document))


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"
