"""Tests for first-run admin credential bootstrap."""

from __future__ import annotations

import asyncio

import pytest

from svc_keeper.services.credentials import (
    DEFAULT_PASSWORD,
    CredentialBootstrapper,
    Credentials,
)
from svc_keeper.services.fake_process import FakeServiceProcess
from svc_keeper.services.service_process import ServiceProcessError


def _run(coro):
    """Run async scenario from sync test functions."""
    return asyncio.run(coro)


def test_empty_password_bootstraps_default_once() -> None:
    process = FakeServiceProcess(running=True, username="root", password="")
    bootstrapper = CredentialBootstrapper(process)

    first = _run(bootstrapper.ensure_credentials())
    second = _run(bootstrapper.ensure_credentials())

    assert first == Credentials(username="root", password=DEFAULT_PASSWORD)
    assert second == first
    assert process.call_count("set_admin_password") == 1
    assert process.password == DEFAULT_PASSWORD


def test_none_password_counts_as_absent() -> None:
    process = FakeServiceProcess(running=True, password=None)

    credentials = _run(CredentialBootstrapper(process).ensure_credentials())

    assert credentials.password == DEFAULT_PASSWORD
    assert process.call_count("set_admin_password") == 1


def test_existing_password_is_never_overwritten() -> None:
    process = FakeServiceProcess(running=True, username="admin", password="s3cret")

    credentials = _run(CredentialBootstrapper(process).ensure_credentials())

    assert credentials == Credentials(username="admin", password="s3cret")
    assert process.call_count("set_admin_password") == 0


def test_custom_default_password() -> None:
    process = FakeServiceProcess(running=True)

    bootstrapper = CredentialBootstrapper(process, default_password="changeme")

    credentials = _run(bootstrapper.ensure_credentials())

    assert credentials.password == "changeme"


def test_bootstrap_errors_propagate() -> None:
    class BrokenProcess(FakeServiceProcess):
        async def get_admin_password(self) -> str | None:
            raise ServiceProcessError("admin command failed")

    with pytest.raises(ServiceProcessError, match="admin command failed"):
        _run(CredentialBootstrapper(BrokenProcess(running=True)).ensure_credentials())
