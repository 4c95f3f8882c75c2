"""Fake service process for deterministic testing and dry runs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from .service_process import ServiceProcessError


@dataclass
class _ProcessState:
    initialized: bool = False
    running: bool = False
    username: str = "admin"
    password: str | None = None
    calls: list[str] = field(default_factory=list)


class FakeServiceProcess:
    """In-memory process that records every call it receives.

    Failure switches (`fail_start`, `fail_stop`, ...) make individual commands
    raise `ServiceProcessError`, and `start_delay_s` keeps `start()` suspended
    long enough for re-entrancy scenarios.
    """

    def __init__(
        self,
        *,
        running: bool = False,
        username: str = "admin",
        password: str | None = None,
        start_delay_s: float = 0.0,
        fail_initialize: bool = False,
        fail_start: bool = False,
        fail_stop: bool = False,
        fail_restore: bool = False,
    ) -> None:
        self._state = _ProcessState(
            running=running, username=username, password=password
        )
        self.start_delay_s = start_delay_s
        self.fail_initialize = fail_initialize
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.fail_restore = fail_restore

    @property
    def calls(self) -> list[str]:
        return list(self._state.calls)

    def call_count(self, name: str) -> int:
        return self._state.calls.count(name)

    @property
    def password(self) -> str | None:
        return self._state.password

    async def initialize(self) -> None:
        self._state.calls.append("initialize")
        if self.fail_initialize:
            raise ServiceProcessError("initialize failed")
        self._state.initialized = True

    async def start(self) -> None:
        self._state.calls.append("start")
        if self.start_delay_s > 0:
            await asyncio.sleep(self.start_delay_s)
        else:
            await asyncio.sleep(0)
        if self.fail_start:
            raise ServiceProcessError("start failed")
        self._state.running = True

    async def stop(self) -> None:
        self._state.calls.append("stop")
        if self.fail_stop:
            raise ServiceProcessError("stop failed")
        self._state.running = False

    async def is_running(self) -> bool:
        self._state.calls.append("is_running")
        return self._state.running

    async def get_admin_username(self) -> str:
        self._state.calls.append("get_admin_username")
        return self._state.username

    async def get_admin_password(self) -> str | None:
        self._state.calls.append("get_admin_password")
        return self._state.password

    async def set_admin_password(self, password: str) -> None:
        self._state.calls.append("set_admin_password")
        self._state.password = password

    async def restore_from_backup(self) -> None:
        self._state.calls.append("restore_from_backup")
        if self.fail_restore:
            raise ServiceProcessError("restore failed")


async def fake_readiness_probe(timeout_s: float) -> None:
    """Readiness probe paired with `FakeServiceProcess`; always ready."""
    del timeout_s
