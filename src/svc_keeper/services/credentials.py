"""First-run admin credential bootstrap."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .service_process import ServiceProcess

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "admin"


@dataclass(frozen=True)
class Credentials:
    """Admin login for the supervised service."""

    username: str
    password: str


class CredentialBootstrapper:
    """Ensures the service has an admin password.

    Callers must only use this while the service is running; the process
    reports an empty password only on its very first start.
    """

    def __init__(
        self, process: ServiceProcess, *, default_password: str = DEFAULT_PASSWORD
    ) -> None:
        self._process = process
        self._default_password = default_password

    async def ensure_credentials(self) -> Credentials:
        password = await self._process.get_admin_password()
        username = await self._process.get_admin_username()
        if not password:
            logger.info("No admin password set; applying first-run default.")
            await self._process.set_admin_password(self._default_password)
            password = self._default_password
        return Credentials(username=username, password=password)
