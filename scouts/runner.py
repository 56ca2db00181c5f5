"""Main runtime for the DotaKeeper watcher service.

Loads configuration, the watchlist, the dedup state and the hero table, then
runs the poll orchestrator until SIGINT/SIGTERM. One-shot modes (--once,
--daily-summary, --check-connection) reuse the same wiring.
"""

import asyncio
import signal
import time
from contextlib import suppress
from pathlib import Path

from dotenv import load_dotenv

from records.heroes import HeroTableLoader
from records.mapper import map_player_profile
from scouts.cli import build_cli_parser
from scouts.config import ConfigError, load_config
from scouts.dispatchers import build_dispatcher, rank_text
from scouts.logging_utils import configure_rotating_logger, resolve_log_file, resolve_log_level, tail_logs
from scouts.notifications import NotificationQueue
from scouts.orchestrator import PollOrchestrator
from scouts.state_store import DedupStateStore
from scouts.time_window import DaySelectorError, parse_day_selector
from scouts.watchlist import Watchlist
from stratz.client import StratzClient
from stratz.errors import StratzError
from stratz.queries import StratzQueries

LOG_FILE = resolve_log_file()
FALLBACK_LOG_FILE = Path.home() / ".dotakeeper" / "logs" / "dotakeeper.log"


def _install_signal_handlers(orchestrator, logger) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is not available on Windows event loops.
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, orchestrator.stop)
    logger.debug("Signal handlers installed")


async def check_connection(queries, main_account_id, logger) -> int:
    """Check STRATZ answers, then show what it knows about the main account."""
    ok = await queries.test_connection()
    logger.info("STRATZ connection %s", "OK" if ok else "FAILED")
    if not ok:
        return 1
    if not main_account_id:
        return 0

    try:
        profile = map_player_profile(await queries.get_player(main_account_id))
    except StratzError as exc:
        logger.error("Could not look up main account %s: %s", main_account_id, exc)
        return 1
    if profile is None:
        logger.warning("Main account %s was not found on STRATZ", main_account_id)
        return 1
    logger.info(
        "Main account: %s | %s | %s match(es), %s win(s)",
        profile.name,
        rank_text(profile.rank_tier),
        profile.match_count,
        profile.win_count,
    )
    return 0


async def main_async(config, cli_args, logger) -> int:
    """Wire the watcher together and run the selected mode."""
    watchlist = Watchlist(config.watchlist_file)
    main_account = (config.main_account_name, config.main_account_id) if config.main_account_id else None
    accounts = watchlist.load(extra=config.friends, main_account=main_account)
    if not accounts and not cli_args.check_connection:
        logger.error("No players to watch. Add entries to %s or set FRIENDS_LIST/STEAM_ACCOUNT_ID.", watchlist.watchlist_path)
        return 1

    store = DedupStateStore(config.state_file)
    store.load()

    async with StratzClient(config.stratz_api_token, config.proxy_urls) as client:
        queries = StratzQueries(client)
        if cli_args.check_connection:
            return await check_connection(queries, config.main_account_id, logger)

        heroes = await HeroTableLoader().get(queries.get_heroes)
        queue = NotificationQueue(build_dispatcher(config.webhook_url, heroes))
        queue.start()
        orchestrator = PollOrchestrator.from_config(config, queries, store, queue, accounts)

        try:
            if cli_args.daily_summary is not None:
                window = parse_day_selector(cli_args.daily_summary, config.summary_timezone)
                if isinstance(window, DaySelectorError):
                    logger.error(window.message)
                    return 2
                await orchestrator.run_daily_summary(window)
            elif cli_args.once:
                await orchestrator.poll_once()
            else:
                _install_signal_handlers(orchestrator, logger)
                await orchestrator.run()
            await queue.drain()
        finally:
            await queue.stop()
            store.save()
    return 0


def main(argv=None) -> int:
    """Program entry point for the watcher."""
    cli_args = build_cli_parser().parse_args(argv)

    # Rather than start the watcher, tail (display) the log file.
    # Most useful when a separate process is already running.
    if cli_args.tail_logs:
        return tail_logs(
            log_file=LOG_FILE,
            lines=cli_args.tail_lines,
            follow=not cli_args.no_follow,
        )

    # LOG_LEVEL may come from the .env file.
    load_dotenv(dotenv_path=cli_args.env_file)
    logger, log_file = configure_rotating_logger(
        logger_name="dotakeeper",
        preferred_log_file=LOG_FILE,
        fallback_log_file=FALLBACK_LOG_FILE,
        level=resolve_log_level(),
    )
    logger.info("%s | Starting DotaKeeper. Log file: %s", time.ctime(time.time()), log_file)

    try:
        config = load_config(cli_args.env_file)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    try:
        return asyncio.run(main_async(config, cli_args, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
