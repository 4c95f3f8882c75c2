"""Service lifecycle orchestration between user intent and the service process.

`LifecycleController` is the only owner of `ServiceState`. It runs the
once-per-process startup sequence (config migration, process init, optional
backup restore, optional auto-start) and exposes idempotent start/stop/toggle
operations that are safe to call from any external trigger.

Concurrency relies on cooperative scheduling on a single event loop: the
in-flight flag is set before the first `await` in `start()`/`stop()`, so a
re-entrant call observes it and returns without touching the process.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from svc_keeper.events import EventHub, ServiceStateChanged, Subscription
from svc_keeper.result import Err, Result, capture
from svc_keeper.services.credentials import CredentialBootstrapper, Credentials
from svc_keeper.services.notifications import NotificationSink
from svc_keeper.services.path_migrator import MigrationReport, PathMigrator
from svc_keeper.services.readiness import Ready, ReadinessChecker
from svc_keeper.services.service_process import ServiceProcess
from svc_keeper.utils.async_utils import run_blocking

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "svc-keeper"
RUNNING_NOTIFICATION_BODY = "Service is running."
INIT_FAILURE_FALLBACK = "Service initialization failed."


class ServiceState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class ServiceNotRunningError(RuntimeError):
    """Raised when an operation requires a running service."""


class LifecycleController:
    """Owns service state and credentials and emits state-change events."""

    def __init__(
        self,
        *,
        process: ServiceProcess,
        readiness: ReadinessChecker,
        migrator: PathMigrator,
        notifier: NotificationSink,
        bootstrapper: CredentialBootstrapper | None = None,
        auto_run: bool = False,
        backup_restore: bool = False,
        start_deadline_s: float | None = None,
    ) -> None:
        self._process = process
        self._readiness = readiness
        self._migrator = migrator
        self._notifier = notifier
        self._bootstrapper = bootstrapper or CredentialBootstrapper(process)
        self._auto_run = auto_run
        self._backup_restore = backup_restore
        self._start_deadline_s = start_deadline_s
        self._state = ServiceState.STOPPED
        self._transition_in_progress = False
        self._initialized = False
        self._credentials: Credentials | None = None
        self._events: EventHub[ServiceStateChanged] = EventHub()

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ServiceState.RUNNING

    @property
    def transition_in_progress(self) -> bool:
        return self._transition_in_progress

    def subscribe(
        self, listener: Callable[[ServiceStateChanged], None]
    ) -> Subscription:
        """Register for state changes; close the handle to unsubscribe."""
        return self._events.subscribe(listener)

    async def initialize_on_process_start(self) -> None:
        """Run the startup sequence once; failures end in a single user notice."""
        if self._initialized:
            logger.debug("Startup sequence already ran; ignoring.")
            return
        self._initialized = True
        try:
            migrated = await self._migrate_config()
            if isinstance(migrated, Err):
                logger.warning(
                    "Config path migration failed; continuing startup: %s",
                    migrated.error,
                    exc_info=migrated.error,
                )
            await self._process.initialize()
            await self.refresh_state()
            if self._backup_restore:
                restored = await self._restore_from_backup()
                if isinstance(restored, Err):
                    logger.warning(
                        "Restore from backup failed; ignoring: %s", restored.error
                    )
            if self._auto_run and not await self._process.is_running():
                if await self.start():
                    self._notifier.schedule_notification(
                        NOTIFICATION_TITLE, RUNNING_NOTIFICATION_BODY
                    )
        except Exception as exc:
            logger.exception("Service initialization failed: %s", exc)
            self._notifier.show_notice(str(exc) or INIT_FAILURE_FALLBACK)

    async def start(self) -> bool:
        """Start the service and verify readiness.

        Returns whether the service ended up running. Failures are logged and
        leave the controller stopped with the launched process stopped too; no
        `Exception` escapes.
        """
        if self._transition_in_progress or self._state is ServiceState.RUNNING:
            logger.debug(
                "Start ignored (state=%s, in_flight=%s)",
                self._state.value,
                self._transition_in_progress,
            )
            return self._state is ServiceState.RUNNING
        # Must be set before the first await.
        self._transition_in_progress = True
        self._set_state(ServiceState.STARTING, "start requested")
        try:
            await self._process.start()
            readiness = await self._readiness.await_ready(self._start_deadline_s)
            if not isinstance(readiness, Ready):
                logger.warning("Service did not become ready: %s", readiness)
                await self._abandon_start("readiness check failed")
            elif await self._process.is_running():
                logger.info("Service ready after %.2fs", readiness.elapsed_s)
                self._set_state(ServiceState.RUNNING, "readiness check passed")
            else:
                logger.warning("Service answered probe but reports not running.")
                await self._abandon_start("process not running")
        except Exception as exc:
            logger.exception("Failed to start service: %s", exc)
            await self._abandon_start("start failed")
        finally:
            try:
                if self._state is ServiceState.STARTING:
                    await self._abandon_start("start interrupted")
            finally:
                self._transition_in_progress = False
                if self._state is ServiceState.STARTING:
                    self._set_state(ServiceState.STOPPED, "start interrupted")
        return self._state is ServiceState.RUNNING

    async def stop(self) -> None:
        """Stop the service; the controller ends stopped even if stop fails."""
        if self._transition_in_progress or self._state is ServiceState.STOPPED:
            logger.debug(
                "Stop ignored (state=%s, in_flight=%s)",
                self._state.value,
                self._transition_in_progress,
            )
            return
        self._transition_in_progress = True
        try:
            await self._process.stop()
        except Exception as exc:
            logger.exception("Failed to stop service: %s", exc)
        finally:
            self._transition_in_progress = False
            self._set_state(ServiceState.STOPPED, "stop requested")

    async def toggle(self) -> None:
        if self._state is ServiceState.RUNNING:
            await self.stop()
        elif self._state is ServiceState.STOPPED:
            await self.start()

    async def refresh_state(self) -> ServiceState:
        """Align state with what the process reports."""
        if self._transition_in_progress:
            return self._state
        running = await self._process.is_running()
        self._set_state(
            ServiceState.RUNNING if running else ServiceState.STOPPED,
            "refreshed from process",
        )
        return self._state

    async def credentials(self) -> Credentials:
        """Return admin credentials, bootstrapping a default on first run."""
        self._require_running()
        if self._credentials is None:
            self._credentials = await self._bootstrapper.ensure_credentials()
        return self._credentials

    async def change_password(self, password: str) -> Credentials:
        self._require_running()
        if not password:
            raise ValueError("password must not be empty")
        await self._process.set_admin_password(password)
        username = (
            self._credentials.username
            if self._credentials is not None
            else await self._process.get_admin_username()
        )
        self._credentials = Credentials(username=username, password=password)
        logger.info("Admin password changed.")
        return self._credentials

    async def _migrate_config(self) -> Result[MigrationReport]:
        async def _migrate() -> MigrationReport:
            return await run_blocking(self._migrator.migrate)

        result = await capture(_migrate)
        if not isinstance(result, Err) and result.value.outcome == "migrated":
            logger.info("Updated config document %s", result.value.document)
        return result

    async def _abandon_start(self, reason: str) -> None:
        """Stop whatever the failed start launched, then settle STOPPED."""
        stopped = await self._stop_launched_process()
        if isinstance(stopped, Err):
            logger.warning(
                "Stopping the process after a failed start failed; ignoring: %s",
                stopped.error,
            )
        self._set_state(ServiceState.STOPPED, reason)

    async def _stop_launched_process(self) -> Result[None]:
        """Best-effort cleanup; the error variant is discarded by contract."""
        return await capture(self._process.stop)

    async def _restore_from_backup(self) -> Result[None]:
        """Best-effort restore; the error variant is discarded by contract."""
        return await capture(self._process.restore_from_backup)

    def _require_running(self) -> None:
        if self._state is not ServiceState.RUNNING:
            raise ServiceNotRunningError("Service is not running; start it first.")

    def _set_state(self, state: ServiceState, reason: str) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        if state is not ServiceState.RUNNING:
            self._credentials = None
        logger.debug(
            "Service state %s -> %s (%s)", previous.value, state.value, reason
        )
        self._events.publish(ServiceStateChanged(previous, state, reason))
