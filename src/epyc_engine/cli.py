# Area: Shared
"""
epyc_engine.cli — Command-line interface
========================================

Small operator tool around the engine.

Usage:
    python -m epyc_engine duration parse 1d2h          # -> 93600
    python -m epyc_engine duration format 93600        # -> 1d2h
    python -m epyc_engine init-db --db epyc.db
    python -m epyc_engine simulate --players 4 --pattern writing,drawing

Settings come from --config (JSON), then EPYC_* environment variables
(a .env file is honoured).
"""

import argparse
import logging
import sys
from typing import List, Optional

from ._shared.duration import format_duration, parse_duration
from ._shared.logging_config import enable_quiet_mode, log_engine_error, setup_logging
from ._store import Store
from .errors import ConfigValidationError, DurationFormatError
from .settings import EngineSettings, load_settings


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="epyc-engine",
        description="EPYC engine - turn rotation and lifecycle tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  epyc-engine duration parse 1d2h
  epyc-engine duration format 93600
  epyc-engine init-db --db epyc.db
  epyc-engine simulate --players 6 --pattern writing,drawing
  EPYC_DB_PATH=/tmp/epyc.db epyc-engine init-db
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to JSON settings file",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show engine log output on the terminal",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    duration = commands.add_parser("duration", help="Parse or format duration strings")
    duration_commands = duration.add_subparsers(dest="action", required=True)
    parse = duration_commands.add_parser("parse", help="Duration string to seconds")
    parse.add_argument("value", help='Duration such as "1d2h30m"')
    fmt = duration_commands.add_parser("format", help="Seconds to duration string")
    fmt.add_argument("seconds", type=int, help="Whole seconds, not negative")

    init_db = commands.add_parser("init-db", help="Create the database schema")
    init_db.add_argument("--db", type=str, help="Database path (overrides settings)")

    simulate = commands.add_parser("simulate", help="Play a full season in memory")
    simulate.add_argument("--players", type=int, default=6, help="Roster size (default: 6)")
    simulate.add_argument(
        "--pattern", type=str, default="writing,drawing",
        help="Turn pattern (default: writing,drawing)",
    )

    return parser.parse_args(argv)


def load_config(config_path: Optional[str]) -> EngineSettings:
    """Load settings from file and environment."""
    return load_settings(config_path)


def run_duration(args: argparse.Namespace) -> int:
    try:
        if args.action == "parse":
            print(int(parse_duration(args.value).total_seconds()))
        else:
            print(format_duration(args.seconds))
    except DurationFormatError as e:
        log_engine_error(e)
        return 2
    return 0


def run_init_db(args: argparse.Namespace, settings: EngineSettings) -> int:
    path = args.db or settings.database_path
    Store.open(path)
    print(f"Database ready at {path}")
    return 0


def run_simulate(args: argparse.Namespace) -> int:
    # Imported here so the other commands do not load the whole engine
    from .simulation import run_simulation

    if args.players < 1:
        print("Error: --players must be at least 1", file=sys.stderr)
        return 2
    try:
        report = run_simulation(args.players, args.pattern)
    except ConfigValidationError as e:
        log_engine_error(e)
        return 2

    for line in report.format_chains():
        print(line)
    print(f"season {report.season_status.value} after {report.steps} steps, "
          f"{report.jobs_fired} jobs fired")
    if not report.ok:
        for violation in report.violations:
            print(f"FAILED: {violation}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)
    try:
        settings = load_config(args.config)
    except ConfigValidationError as e:
        log_engine_error(e)
        return 2

    setup_logging(settings.log_file, settings.log_level_value)
    if not args.verbose:
        enable_quiet_mode()
    logging.getLogger("epyc_engine.cli").debug("Running %s", args.command)

    if args.command == "duration":
        return run_duration(args)
    if args.command == "init-db":
        return run_init_db(args, settings)
    return run_simulate(args)
