"""Command-line interface for svc-keeper."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, replace
from pathlib import Path

from . import __version__
from .app import SERVICE_BACKENDS, KeeperApp, resolve_backend_name
from .doctor import render_report, run_doctor
from .logging_utils import apply_log_level, setup_logging
from .paths import STORAGE_ROOT_ENV, log_dir, settings_path, storage_root
from .runtime_config import resolve_auto_run, resolve_log_level
from .services.path_migrator import PathMigrator
from .settings_store import (
    KeeperSettings,
    apply_setting_assignments,
    load_settings_with_notice,
    save_settings,
)
from .version import build_help_epilog

COMMANDS = ("run", "migrate", "doctor", "settings")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="svc-keeper",
        description="Supervise a local server: start, verify, stop.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=build_help_epilog(),
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--backend",
        choices=SERVICE_BACKENDS,
        help="Service process backend to use (fake or subprocess).",
    )
    parser.add_argument(
        "--storage-root",
        help=f"Override the service storage root (same as ${STORAGE_ROOT_ENV}).",
    )
    parser.add_argument(
        "--auto-run",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Start the service during startup and announce it.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="run",
        help="run (default): supervise in the foreground; "
        "migrate: repair stale config paths; doctor: check the environment; "
        "settings: show or update persisted settings.",
    )
    parser.add_argument(
        "assignments",
        nargs="*",
        metavar="KEY=VALUE",
        help="Settings to persist (settings command only), e.g. auto_run=true.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.assignments and args.command != "settings":
        parser.error("KEY=VALUE arguments are only accepted by 'settings'")
    logger = logging.getLogger(__name__)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=args.verbose,
        )
        if args.storage_root:
            os.environ[STORAGE_ROOT_ENV] = args.storage_root
        persisted, notice = load_settings_with_notice(settings_path())
        if notice:
            print(notice, file=sys.stderr)
        effective_level = resolve_log_level(
            verbose=args.verbose, quiet=args.quiet, persisted=persisted.log_level
        )
        if effective_level != level:
            apply_log_level(effective_level)
        settings = replace(
            persisted, auto_run=resolve_auto_run(args.auto_run, persisted.auto_run)
        )
        logger.info("Starting svc-keeper %s", args.command)

        if args.command == "settings":
            return _settings_command(persisted, args.assignments)

        if args.command == "doctor":
            backend = resolve_backend_name(args.backend, settings.service_backend)
            report = run_doctor(
                backend, binary=settings.server_binary, root=storage_root()
            )
            print(render_report(report))
            return report.exit_code

        if args.command == "migrate":
            migration = PathMigrator().migrate()
            if migration.outcome == "migrated":
                print(
                    f"Updated {migration.replacements} path(s) "
                    f"in {migration.document}."
                )
            else:
                print(f"No migration needed for {migration.document}.")
            return 0

        app = KeeperApp(settings, backend_name=args.backend)
        return asyncio.run(app.run())
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


def _settings_command(persisted: KeeperSettings, assignments: list[str]) -> int:
    if assignments:
        try:
            persisted = apply_setting_assignments(persisted, assignments)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return 2
        path = settings_path()
        save_settings(path, persisted)
        print(f"Saved {path}.")
    print(json.dumps(asdict(persisted), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
