"""Service process backed by a local server binary.

The binary is expected to follow the AList-style command surface:

- `<binary> server --data <root>` runs the server in the foreground,
- `<binary> admin --data <root>` prints `username: ...` / `password: ...`,
- `<binary> admin set <password> --data <root>` changes the admin password.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path

from svc_keeper.paths import storage_root
from svc_keeper.utils.async_utils import run_blocking

from .service_process import ServiceProcessError

logger = logging.getLogger(__name__)

_USERNAME_RE = re.compile(r"username:\s*(\S+)", re.IGNORECASE)
_PASSWORD_RE = re.compile(r"password:\s*(\S+)", re.IGNORECASE)


def parse_admin_output(output: str) -> tuple[str | None, str | None]:
    """Extract `(username, password)` from admin command output."""
    username = _USERNAME_RE.search(output)
    password = _PASSWORD_RE.search(output)
    return (
        username.group(1) if username else None,
        password.group(1) if password else None,
    )


def resolve_server_binary(binary: str) -> str | None:
    """Return the launchable path for `binary`: a PATH lookup or a direct file."""
    resolved = shutil.which(binary)
    if resolved is not None:
        return resolved
    if Path(binary).is_file():
        return binary
    return None


def copy_missing_files(source: Path, target: Path) -> list[Path]:
    """Copy files from `source` that do not exist under `target`.

    Existing local files always win. Returns the relative paths copied.
    """
    if not source.is_dir():
        raise FileNotFoundError(f"Backup directory not found: {source}")
    copied: list[Path] = []
    for item in sorted(source.rglob("*")):
        if not item.is_file():
            continue
        relative = item.relative_to(source)
        destination = target / relative
        if destination.exists():
            continue
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, destination)
        copied.append(relative)
    return copied


class SubprocessServiceProcess:
    """Supervise the server binary as an asyncio child process."""

    def __init__(
        self,
        *,
        binary: str = "alist",
        root_provider: Callable[[], Path] = storage_root,
        backup_dir: Path | None = None,
        command_timeout_s: float = 10.0,
        stop_timeout_s: float = 5.0,
    ) -> None:
        self._binary = binary
        self._root_provider = root_provider
        self._backup_dir = backup_dir
        self._command_timeout_s = command_timeout_s
        self._stop_timeout_s = stop_timeout_s
        self._proc: asyncio.subprocess.Process | None = None

    async def initialize(self) -> None:
        if resolve_server_binary(self._binary) is None:
            raise ServiceProcessError(
                f"Server binary '{self._binary}' was not found on PATH."
            )
        root = self._root_provider()
        await run_blocking(root.mkdir, parents=True, exist_ok=True)

    async def start(self) -> None:
        if await self.is_running():
            return
        root = self._root_provider()
        logger.info("Launching %s server with data dir %s", self._binary, root)
        self._proc = await asyncio.create_subprocess_exec(
            self._binary,
            "server",
            "--data",
            str(root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )

    async def stop(self) -> None:
        proc = self._proc
        if proc is None:
            return
        self._proc = None
        if proc.returncode is not None:
            return
        with suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Server did not exit within %.1fs; killing.", self._stop_timeout_s
            )
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()

    async def is_running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def get_admin_username(self) -> str:
        username, _password = parse_admin_output(await self._admin())
        if username is None:
            raise ServiceProcessError("Admin command did not report a username.")
        return username

    async def get_admin_password(self) -> str | None:
        _username, password = parse_admin_output(await self._admin())
        return password

    async def set_admin_password(self, password: str) -> None:
        await self._admin("set", password)

    async def restore_from_backup(self) -> None:
        if self._backup_dir is None:
            raise ServiceProcessError("No backup directory configured.")
        copied = await run_blocking(
            copy_missing_files, self._backup_dir, self._root_provider()
        )
        logger.info("Restored %d file(s) from %s", len(copied), self._backup_dir)

    async def _admin(self, *args: str) -> str:
        root = self._root_provider()
        proc = await asyncio.create_subprocess_exec(
            self._binary,
            "admin",
            *args,
            "--data",
            str(root),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(), timeout=self._command_timeout_s
            )
        except asyncio.TimeoutError:
            with suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise ServiceProcessError("Admin command timed out.") from None
        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise ServiceProcessError(
                f"Admin command failed (exit={proc.returncode}): {output.strip()}"
            )
        return output
