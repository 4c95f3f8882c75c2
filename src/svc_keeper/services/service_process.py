"""Supervised service process contract.

`LifecycleController` depends on this protocol to stay process-agnostic.
Concrete implementations (fake/subprocess) translate their own mechanics into
these async calls.
"""

from __future__ import annotations

from typing import Protocol


class ServiceProcessError(RuntimeError):
    """Raised by a service process when a command cannot be completed."""


class ServiceProcess(Protocol):
    """Service process protocol consumed by `LifecycleController`."""

    async def initialize(self) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def is_running(self) -> bool: ...

    async def get_admin_username(self) -> str: ...

    async def get_admin_password(self) -> str | None: ...

    async def set_admin_password(self, password: str) -> None: ...

    async def restore_from_backup(self) -> None: ...
