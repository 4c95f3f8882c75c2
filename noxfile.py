"""Nox sessions for svc-keeper quality gates."""

from __future__ import annotations

import nox

nox.options.sessions = ["lint", "typecheck", "tests"]


@nox.session
def lint(session: nox.Session) -> None:
    """Run lint and formatting checks without mutating files."""
    session.install("ruff")
    session.run("ruff", "check", "src", "tests", "noxfile.py")
    session.run("ruff", "format", "--check", "src", "tests", "noxfile.py")


@nox.session(name="lint-fix")
def lint_fix(session: nox.Session) -> None:
    """Apply ruff fixes and formatting."""
    session.install("ruff")
    session.run("ruff", "check", "--fix", "src", "tests", "noxfile.py")
    session.run("ruff", "format", "src", "tests", "noxfile.py")


@nox.session
def typecheck(session: nox.Session) -> None:
    """Run mypy on the svc_keeper package with runtime dependencies installed."""
    session.install("mypy")
    session.install("-e", ".")
    session.run("mypy", "src/svc_keeper")


@nox.session
def tests(session: nox.Session) -> None:
    """Run the pytest suite against an editable install."""
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)


@nox.session(python=False)
def local(session: nox.Session) -> None:
    """Run the toolchain from the current environment (no virtualenv)."""
    session.run("ruff", "check", "--fix", "src", "tests", external=True)
    session.run("ruff", "format", "src", "tests", external=True)
    session.run("mypy", "src/svc_keeper", external=True)
    session.run("pytest", external=True)
