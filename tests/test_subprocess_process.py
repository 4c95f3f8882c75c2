"""Tests for the subprocess-backed service process."""

from __future__ import annotations

import asyncio
import stat
import sys
from pathlib import Path

import pytest

from svc_keeper.services.lifecycle import LifecycleController, ServiceState
from svc_keeper.services.path_migrator import PathMigrator
from svc_keeper.services.readiness import HttpReadinessProbe, ReadinessChecker
from svc_keeper.services.service_process import ServiceProcessError
from svc_keeper.services.subprocess_process import (
    SubprocessServiceProcess,
    copy_missing_files,
    parse_admin_output,
)

FAKE_SERVER = """#!/bin/sh
case "$1" in
  server)
    exec sleep 30
    ;;
  admin)
    if [ "$2" = "set" ]; then
      echo "update password to $3"
    elif [ "$2" = "fail" ]; then
      echo "database locked"
      exit 3
    else
      echo "INFO admin user's info:"
      echo "username: admin"
      echo "password: hunter2"
    fi
    ;;
esac
"""

posix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="shell script stands in for the server binary"
)


def _write_fake_server(tmp_path: Path) -> Path:
    binary = tmp_path / "fake-server"
    binary.write_text(FAKE_SERVER, encoding="utf-8")
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR)
    return binary


def test_parse_admin_output_reads_username_and_password() -> None:
    output = "INFO admin user's info:\nusername: admin\npassword: s3cret\n"
    assert parse_admin_output(output) == ("admin", "s3cret")


def test_parse_admin_output_without_password() -> None:
    assert parse_admin_output("username: admin\n") == ("admin", None)
    assert parse_admin_output("") == (None, None)


def test_copy_missing_files_keeps_local_files(tmp_path) -> None:
    source = tmp_path / "backup"
    target = tmp_path / "storage"
    (source / "nested").mkdir(parents=True)
    (source / "data.db").write_text("backup", encoding="utf-8")
    (source / "nested" / "log.txt").write_text("backup-log", encoding="utf-8")
    target.mkdir()
    (target / "data.db").write_text("local", encoding="utf-8")

    copied = copy_missing_files(source, target)

    assert copied == [Path("nested") / "log.txt"]
    assert (target / "data.db").read_text(encoding="utf-8") == "local"
    assert (target / "nested" / "log.txt").read_text(encoding="utf-8") == "backup-log"


def test_copy_missing_files_requires_source_dir(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        copy_missing_files(tmp_path / "absent", tmp_path)


def test_restore_from_backup_without_backup_dir_raises(tmp_path) -> None:
    process = SubprocessServiceProcess(root_provider=lambda: tmp_path)
    with pytest.raises(ServiceProcessError):
        asyncio.run(process.restore_from_backup())


def test_restore_from_backup_copies_into_storage_root(tmp_path) -> None:
    backup = tmp_path / "backup"
    backup.mkdir()
    (backup / "config.json").write_text("{}", encoding="utf-8")
    root = tmp_path / "storage"
    process = SubprocessServiceProcess(root_provider=lambda: root, backup_dir=backup)

    asyncio.run(process.restore_from_backup())

    assert (root / "config.json").read_text(encoding="utf-8") == "{}"


def test_initialize_fails_when_binary_missing(tmp_path) -> None:
    process = SubprocessServiceProcess(
        binary=str(tmp_path / "no-such-server"), root_provider=lambda: tmp_path
    )
    with pytest.raises(ServiceProcessError):
        asyncio.run(process.initialize())


def test_stop_without_start_is_noop(tmp_path) -> None:
    process = SubprocessServiceProcess(root_provider=lambda: tmp_path)

    async def run() -> bool:
        await process.stop()
        return await process.is_running()

    assert asyncio.run(run()) is False


@posix_only
def test_initialize_creates_storage_root(tmp_path) -> None:
    root = tmp_path / "storage"
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)), root_provider=lambda: root
    )

    asyncio.run(process.initialize())

    assert root.is_dir()


@posix_only
def test_start_and_stop_child_process(tmp_path) -> None:
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)),
        root_provider=lambda: tmp_path,
        stop_timeout_s=2.0,
    )

    async def run() -> tuple[bool, bool]:
        await process.start()
        running = await process.is_running()
        await process.stop()
        return running, await process.is_running()

    assert asyncio.run(run()) == (True, False)


@posix_only
def test_admin_commands_parse_server_output(tmp_path) -> None:
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)), root_provider=lambda: tmp_path
    )

    async def run() -> tuple[str, str | None]:
        await process.set_admin_password("hunter2")
        return (
            await process.get_admin_username(),
            await process.get_admin_password(),
        )

    assert asyncio.run(run()) == ("admin", "hunter2")


@posix_only
def test_admin_command_failure_raises(tmp_path) -> None:
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)), root_provider=lambda: tmp_path
    )

    with pytest.raises(ServiceProcessError, match="exit=3"):
        asyncio.run(process._admin("fail"))


@posix_only
def test_root_is_resolved_per_command(tmp_path) -> None:
    roots = iter([tmp_path / "first", tmp_path / "second"])
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)), root_provider=lambda: next(roots)
    )

    asyncio.run(process.initialize())
    asyncio.run(process.initialize())

    assert (tmp_path / "first").is_dir()
    assert (tmp_path / "second").is_dir()


class _SilentNotifier:
    def schedule_notification(self, title: str, body: str) -> None:
        del title, body

    def show_notice(self, message: str) -> None:
        del message


@posix_only
def test_unready_server_is_not_left_running(tmp_path) -> None:
    process = SubprocessServiceProcess(
        binary=str(_write_fake_server(tmp_path)),
        root_provider=lambda: tmp_path,
        stop_timeout_s=2.0,
    )
    controller = LifecycleController(
        process=process,
        readiness=ReadinessChecker(
            HttpReadinessProbe("http://127.0.0.1:1/ping"), grace_s=0.0
        ),
        migrator=PathMigrator(root_provider=lambda: tmp_path),
        notifier=_SilentNotifier(),
    )

    async def run() -> tuple[bool, bool]:
        started = await controller.start()
        await controller.stop()
        return started, await process.is_running()

    assert asyncio.run(run()) == (False, False)
    assert controller.state is ServiceState.STOPPED
