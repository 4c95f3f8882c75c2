"""Tests for foreground supervisor wiring."""

from __future__ import annotations

import asyncio
import io

from rich.console import Console

from svc_keeper.app import (
    KeeperApp,
    build_controller,
    build_service_process,
    resolve_backend_name,
)
from svc_keeper.paths import STORAGE_ROOT_ENV
from svc_keeper.services.fake_process import FakeServiceProcess
from svc_keeper.services.lifecycle import LifecycleController, ServiceState
from svc_keeper.services.notifications import ConsoleNotificationSink
from svc_keeper.services.path_migrator import PathMigrator
from svc_keeper.services.readiness import ReadinessChecker
from svc_keeper.services.subprocess_process import SubprocessServiceProcess
from svc_keeper.settings_store import KeeperSettings


def _console() -> tuple[Console, io.StringIO]:
    buffer = io.StringIO()
    return Console(file=buffer, width=100, force_terminal=False), buffer


async def _run_until_stopped(app: KeeperApp) -> int:
    stop_event = asyncio.Event()
    stop_event.set()
    return await app.run(stop_event)


def test_resolve_backend_name_precedence() -> None:
    assert resolve_backend_name("fake", "subprocess") == "fake"
    assert resolve_backend_name(None, "fake") == "fake"
    assert resolve_backend_name(None, "bogus") == "subprocess"
    assert resolve_backend_name("bogus", None) == "subprocess"


def test_build_service_process_selects_backend(tmp_path) -> None:
    settings = KeeperSettings(backup_dir=str(tmp_path))
    assert isinstance(
        build_service_process("fake", settings, lambda: tmp_path), FakeServiceProcess
    )
    assert isinstance(
        build_service_process("subprocess", settings, lambda: tmp_path),
        SubprocessServiceProcess,
    )


def test_build_controller_carries_settings(tmp_path) -> None:
    console, _buffer = _console()
    controller = build_controller(
        KeeperSettings(auto_run=True),
        backend_name="fake",
        notifier=ConsoleNotificationSink(console),
        root_provider=lambda: tmp_path,
    )
    assert controller.state is ServiceState.STOPPED
    assert controller.transition_in_progress is False


def test_app_run_fake_backend_starts_and_stops(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(STORAGE_ROOT_ENV, str(tmp_path))
    console, buffer = _console()
    app = KeeperApp(
        KeeperSettings(service_backend="fake", startup_grace_s=0.0),
        console=console,
    )

    rc = asyncio.run(_run_until_stopped(app))

    output = buffer.getvalue()
    assert rc == 0
    assert app.startup_failed is False
    assert app.controller.state is ServiceState.STOPPED
    assert "Service state: running" in output
    assert "Service state: stopped" in output
    assert "Admin username: admin" in output
    assert "Admin password: admin" in output


def test_app_run_reports_start_failure(tmp_path) -> None:
    console, buffer = _console()
    process = FakeServiceProcess(fail_start=True)
    controller = LifecycleController(
        process=process,
        readiness=ReadinessChecker(lambda timeout_s: asyncio.sleep(0), grace_s=0.0),
        migrator=PathMigrator(root_provider=lambda: tmp_path),
        notifier=ConsoleNotificationSink(console),
    )
    app = KeeperApp(KeeperSettings(), console=console, controller=controller)

    rc = asyncio.run(_run_until_stopped(app))

    assert rc == 1
    assert app.startup_failed is True
    assert "Service failed to start." in buffer.getvalue()
    assert "svc-keeper doctor" in buffer.getvalue()
    assert process.call_count("stop") == 1
    assert asyncio.run(process.is_running()) is False
