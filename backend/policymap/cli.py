"""``policymap`` command line: static build, migration, CSV import, connectivity check.

Usage:
    policymap                 # same as ``policymap build``
    policymap build [--site-root PATH] [--data-dir PATH]
    policymap migrate [--mode ledger|remote_gate]
    policymap import-csv PATH
    policymap check-remote
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from policymap.adapters.base import PersistenceError
from policymap.adapters.keyvalue import JsonFileKeyValueStore
from policymap.adapters.local import LocalProposalAdapter
from policymap.config import Settings, get_settings
from policymap.services.importer import insert_in_batches, read_csv_proposals
from policymap.services.migration import LocalToRemoteMigration
from policymap.services.site_build import SiteBuilder

logger = logging.getLogger(__name__)


def _remote_adapter():
    from policymap.adapters.remote import SqlProposalAdapter
    from policymap.db.session import SessionLocal

    return SqlProposalAdapter(SessionLocal)


def run_build(args: argparse.Namespace, settings: Settings) -> int:
    if args.site_root or args.data_dir:
        builder = SiteBuilder(
            args.site_root or settings.site_root,
            args.data_dir,
            legacy_page_aliases=settings.legacy_page_aliases,
        )
    else:
        builder = SiteBuilder.from_settings(settings)
    report = builder.build()
    print("Build complete" if report.success else "Build finished with errors")
    print(f"proposals={report.proposals}")
    print(f"pages_written={report.pages_written}")
    print(f"aliases_written={report.aliases_written}")
    print(f"stale_removed={len(report.stale_removed)}")
    if report.used_placeholder:
        print("placeholder=true")
    for error in report.errors:
        print(f"error: {error}", file=sys.stderr)
    return 0 if report.success else 1


def run_migrate(args: argparse.Namespace, settings: Settings) -> int:
    kv = JsonFileKeyValueStore(settings.local_store_path)
    migration = LocalToRemoteMigration(
        kv,
        LocalProposalAdapter(kv),
        _remote_adapter(),
        batch_size=settings.remote_batch_size,
        batch_delay=settings.remote_batch_delay_seconds,
        mode=args.mode or settings.migration_mode,
    )
    report = migration.run()
    print(f"status={report.status}")
    print(f"inserted={report.inserted}")
    print(f"skipped={report.skipped}")
    print(f"failed={report.failed}")
    print(f"batches={report.batches}")
    if not report.success:
        print(f"error: {report.error}", file=sys.stderr)
        return 1
    return 0


def run_import_csv(args: argparse.Namespace, settings: Settings) -> int:
    try:
        records = read_csv_proposals(args.path)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"error: cannot read {args.path}: {exc}", file=sys.stderr)
        return 1
    remote = _remote_adapter()
    try:
        remote.wait_until_ready(
            attempts=settings.remote_connect_attempts,
            base_delay=settings.remote_connect_backoff_seconds,
        )
    except PersistenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    report = insert_in_batches(
        remote,
        records,
        batch_size=settings.remote_batch_size,
        batch_delay=settings.remote_batch_delay_seconds,
    )
    print(f"parsed={report.total}")
    print(f"inserted={report.inserted}")
    print(f"failed={report.failed}")
    if not report.success:
        print(f"error: {report.error}", file=sys.stderr)
        return 1
    return 0


def run_check_remote(args: argparse.Namespace, settings: Settings) -> int:
    try:
        _remote_adapter().wait_until_ready(
            attempts=settings.remote_connect_attempts,
            base_delay=settings.remote_connect_backoff_seconds,
        )
    except PersistenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print("Remote proposals table reachable")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="policymap", description="Policy map proposal tooling.")
    subparsers = parser.add_subparsers(dest="command")

    build = subparsers.add_parser("build", help="Reconcile data files and regenerate proposal pages.")
    build.add_argument("--site-root", type=Path, default=None, help="Site directory (default: settings.site_root)")
    build.add_argument("--data-dir", type=Path, default=None, help="Data directory (default: <site-root>/data)")
    build.set_defaults(handler=run_build)

    migrate = subparsers.add_parser("migrate", help="Copy local proposals into the remote table.")
    migrate.add_argument(
        "--mode",
        choices=("ledger", "remote_gate"),
        default=None,
        help="Completion tracking mode (default: settings.migration_mode)",
    )
    migrate.set_defaults(handler=run_migrate)

    import_csv = subparsers.add_parser("import-csv", help="Bulk insert proposals from a CSV file.")
    import_csv.add_argument("path", type=Path)
    import_csv.set_defaults(handler=run_import_csv)

    check_remote = subparsers.add_parser("check-remote", help="Check the remote table is reachable.")
    check_remote.set_defaults(handler=run_check_remote)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        args = parser.parse_args(["build", *(argv or [])])
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        return args.handler(args, settings)
    except PersistenceError as exc:
        logger.exception("cli.command_failed command=%s", args.command)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
