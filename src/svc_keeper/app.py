"""Process-level wiring of the lifecycle controller and its collaborators."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path

from rich.console import Console

from .events import ServiceStateChanged
from .paths import storage_root
from .services.fake_process import FakeServiceProcess, fake_readiness_probe
from .services.lifecycle import LifecycleController, ServiceNotRunningError
from .services.notifications import ConsoleNotificationSink, NotificationSink
from .services.path_migrator import PathMigrator
from .services.readiness import (
    HttpReadinessProbe,
    ReadinessChecker,
    ReadinessProbe,
)
from .services.subprocess_process import SubprocessServiceProcess
from .settings_store import KeeperSettings

logger = logging.getLogger(__name__)

SERVICE_BACKENDS = ("fake", "subprocess")


def resolve_backend_name(cli_backend: str | None, settings_backend: str | None) -> str:
    if cli_backend in SERVICE_BACKENDS:
        return cli_backend
    if settings_backend in SERVICE_BACKENDS:
        return settings_backend
    return "subprocess"


def build_service_process(
    name: str, settings: KeeperSettings, root_provider: Callable[[], Path]
) -> FakeServiceProcess | SubprocessServiceProcess:
    logger.info("Service backend selected: %s", name)
    if name == "fake":
        return FakeServiceProcess()
    return SubprocessServiceProcess(
        binary=settings.server_binary,
        root_provider=root_provider,
        backup_dir=Path(settings.backup_dir) if settings.backup_dir else None,
    )


def build_controller(
    settings: KeeperSettings,
    *,
    backend_name: str,
    notifier: NotificationSink,
    root_provider: Callable[[], Path] = storage_root,
) -> LifecycleController:
    """Assemble a controller from persisted settings."""
    process = build_service_process(backend_name, settings, root_provider)
    probe: ReadinessProbe = (
        fake_readiness_probe
        if backend_name == "fake"
        else HttpReadinessProbe(settings.probe_url)
    )
    readiness = ReadinessChecker(
        probe,
        grace_s=settings.startup_grace_s,
        probe_timeout_s=settings.probe_timeout_s,
    )
    return LifecycleController(
        process=process,
        readiness=readiness,
        migrator=PathMigrator(root_provider=root_provider),
        notifier=notifier,
        auto_run=settings.auto_run,
        backup_restore=settings.backup_restore,
    )


class KeeperApp:
    """Foreground supervisor: start the service and hold it until signalled."""

    def __init__(
        self,
        settings: KeeperSettings,
        *,
        backend_name: str | None = None,
        console: Console | None = None,
        controller: LifecycleController | None = None,
    ) -> None:
        self.console = console or Console()
        self.backend_name = resolve_backend_name(
            backend_name, settings.service_backend
        )
        self.controller = controller or build_controller(
            settings,
            backend_name=self.backend_name,
            notifier=ConsoleNotificationSink(self.console),
        )
        self.startup_failed = False

    async def run(self, stop_event: asyncio.Event | None = None) -> int:
        """Run until `stop_event` is set (or SIGINT/SIGTERM); return exit code."""
        stop_event = stop_event or asyncio.Event()
        subscription = self.controller.subscribe(self._on_state_changed)
        removers = _install_signal_handlers(stop_event)
        try:
            await self.controller.initialize_on_process_start()
            if not await self.controller.start():
                self.startup_failed = True
                self.console.print(
                    "[bold red]Service failed to start.[/]\n"
                    "Likely cause: server binary missing or listener not ready.\n"
                    "Next step: run `svc-keeper doctor` and review the log file."
                )
                return 1
            await self._show_credentials()
            await stop_event.wait()
            return 0
        finally:
            await self.controller.stop()
            subscription.close()
            for remove in removers:
                remove()

    async def _show_credentials(self) -> None:
        try:
            credentials = await self.controller.credentials()
        except ServiceNotRunningError:
            return
        except Exception as exc:
            logger.exception("Failed to read admin credentials: %s", exc)
            self.console.print("[yellow]Admin credentials unavailable; see log.[/]")
            return
        self.console.print(
            f"Admin username: [bold]{credentials.username}[/]\n"
            f"Admin password: [bold]{credentials.password}[/]"
        )

    def _on_state_changed(self, event: ServiceStateChanged) -> None:
        self.console.print(f"Service state: {event.state.value}")


def _install_signal_handlers(
    stop_event: asyncio.Event,
) -> list[Callable[[], object]]:
    loop = asyncio.get_running_loop()
    removers: list[Callable[[], object]] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Unsupported on Windows event loops.
        with suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, stop_event.set)
            removers.append(lambda sig=sig: loop.remove_signal_handler(sig))
    return removers
