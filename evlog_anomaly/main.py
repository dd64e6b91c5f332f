"""Event Log Anomaly Finder - command-line entry point."""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config
from .errors import ConfigError
from .file_flagging import flag_files
from .log_processor import scan_logs
from .output import session_db
from .output.report import render_text, render_xml

logger = logging.getLogger(__name__)

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evlog-anomaly",
        description="Find timestamp tampering in Windows EVT/EVTX logs and cluster it into incidents.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan directories (e.g. a mounted image) for EVT/EVTX logs")
    scan.add_argument("roots", nargs="+", help="Directories or log files to scan")
    scan.add_argument("-f", "--flag-files", action="store_true", default=None,
                      help="Flag files whose MAC times fall inside an anomaly")
    scan.add_argument("-x", "--xml", action="store_true", default=None, help="Output in XML format")
    scan.add_argument("-v", "--verbose", action="store_true", help="Verbose output to stderr")
    scan.add_argument("-w", "--workers", type=int, default=None, help="Parallel decode workers")
    scan.add_argument("-c", "--config", help="YAML config file")
    scan.add_argument("--save-session", action="store_true", help="Store the results in the sessions database")
    scan.add_argument("--db", help="Sessions database path")
    scan.add_argument("--name", help="Session name (with --save-session)")

    sessions = sub.add_parser("sessions", help="List or show stored scans")
    sessions.add_argument("--db", help="Sessions database path")
    sessions.add_argument("--show", type=int, metavar="ID", help="Print the report of a stored scan")
    sessions.add_argument("-x", "--xml", action="store_true", help="Show in XML format")
    sessions.add_argument("--delete", type=int, metavar="ID", help="Delete a stored scan")
    return parser


def _cmd_scan(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config).with_overrides(
            flag_files=args.flag_files, xml=args.xml, workers=args.workers, session_db=args.db,
        )
    except ConfigError as e:
        logger.error("%s", e)
        return 2
    if config.workers < 1:
        logger.error("--workers must be >= 1")
        return 1
    missing = [r for r in args.roots if not Path(r).exists()]
    if missing:
        logger.error("Not found: %s", ", ".join(missing))
        return 1

    result = scan_logs(args.roots, config)
    if config.flag_files:
        flag_files(args.roots, result.collections, follow_symlinks=config.follow_symlinks)

    if config.xml:
        sys.stdout.write(render_xml(result.collections))
    else:
        render_text(result, console)

    if args.save_session:
        db_path = Path(config.session_db) if config.session_db else None
        scan_id = session_db.create_scan(db_path=db_path, name=args.name, roots=[str(r) for r in args.roots])
        session_db.save_scan(scan_id, result, config, db_path=db_path)
        logger.info("Saved scan #%d", scan_id)
    return 0


def _cmd_sessions(args: argparse.Namespace) -> int:
    db_path = Path(args.db) if args.db else None
    if args.delete is not None:
        if not session_db.delete_scan(args.delete, db_path=db_path):
            logger.error("Scan id %d not found", args.delete)
            return 1
        logger.info("Deleted scan #%d", args.delete)
        return 0
    if args.show is not None:
        try:
            stored = session_db.load_scan(args.show, db_path=db_path)
        except FileNotFoundError as e:
            logger.error("%s", e)
            return 1
        if args.xml:
            sys.stdout.write(render_xml(stored["result"].collections))
        else:
            render_text(stored["result"], console)
        return 0
    table = Table(title="Stored scans")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Roots")
    table.add_column("Created (UTC)")
    for scan_id, name, roots, created_at in session_db.list_scans(db_path=db_path):
        table.add_row(str(scan_id), name, ", ".join(roots), created_at)
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_logging(getattr(args, "verbose", False))
    if args.command == "scan":
        return _cmd_scan(args)
    return _cmd_sessions(args)


if __name__ == "__main__":
    sys.exit(main())
