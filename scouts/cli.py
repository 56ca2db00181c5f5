import argparse
from pathlib import Path


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DotaKeeper STRATZ watcher.")
    parser.add_argument(
        "--tail-logs",
        action="store_true",
        help="Tail the watcher log file instead of starting the watcher.",
    )
    parser.add_argument(
        "--tail-lines",
        type=int,
        default=100,
        help="How many recent lines to print before following logs (default: 100).",
    )
    parser.add_argument(
        "--no-follow",
        action="store_true",
        help="When used with --tail-logs, print lines and exit without follow mode.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Read configuration from this .env file (default: ./.env when present).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle, deliver its notifications and exit.",
    )
    parser.add_argument(
        "--daily-summary",
        nargs="?",
        const="1",
        default=None,
        metavar="DAY",
        help='Send the daily summary for DAY ("1" = yesterday, "0" = today, or "11-Jan-2026") and exit.',
    )
    parser.add_argument(
        "--check-connection",
        action="store_true",
        help="Check that STRATZ answers with the configured token and proxies, then exit.",
    )
    return parser
