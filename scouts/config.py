"""Runtime configuration loaded from the environment (and an optional .env file)."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import time as dt_time
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

logger = logging.getLogger("dotakeeper.scouts")

defaults = {
    "poll_interval_minutes": 5,
    "daily_summary_weekday_time": "03:00",     # Mon-Fri, local time in summary_timezone
    "daily_summary_weekend_time": "22:00",     # Sat-Sun
    "summary_timezone": "Europe/London",
    "state_file": "data/state-cache.json",
    "watchlist_file": "data/watchlist.json",
    "main_account_name": "You",
}


class ConfigError(Exception):
    """Configuration that makes starting the watcher impossible."""


@dataclass(frozen=True)
class Config:
    stratz_api_token: str
    poll_interval_minutes: int = defaults["poll_interval_minutes"]
    weekday_summary_time: dt_time = dt_time(3, 0)
    weekend_summary_time: dt_time = dt_time(22, 0)
    summary_timezone: str = defaults["summary_timezone"]
    proxy_urls: tuple[str, ...] = ()
    state_file: Path = Path(defaults["state_file"])
    watchlist_file: Path = Path(defaults["watchlist_file"])
    main_account_id: Optional[str] = None
    main_account_name: str = defaults["main_account_name"]
    friends: dict = field(default_factory=dict)
    webhook_url: Optional[str] = None
    live_notifications: bool = True
    new_match_notifications: bool = True


def parse_summary_time(value: Optional[str], default: str) -> dt_time:
    """Parse "HH:MM"; malformed values fall back to ``default`` with a warning."""
    for candidate in (value, default):
        if not candidate:
            continue
        parts = str(candidate).strip().split(":")
        if len(parts) == 2 and all(p.strip().isdecimal() for p in parts):
            hour, minute = int(parts[0]), int(parts[1])
            if 0 <= hour < 24 and 0 <= minute < 60:
                return dt_time(hour, minute)
        logger.warning("Ignoring invalid daily summary time %r, using %s", candidate, default)
    return dt_time(0, 0)


def parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not str(value).strip():
        return default
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_proxy_urls(value: Optional[str]) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(url.strip() for url in value.split(",") if url.strip())


def parse_friends(value: Optional[str]) -> dict:
    if not value:
        return {}
    try:
        friends = json.loads(value)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse FRIENDS_LIST, ignoring it: %s", exc)
        return {}
    if not isinstance(friends, dict):
        logger.warning("FRIENDS_LIST must be a JSON object of name -> [ids], ignoring it")
        return {}
    return friends


def load_config(env_file: Optional[Path] = None, environ=None) -> Config:
    if environ is None:
        load_dotenv(dotenv_path=env_file)
        environ = os.environ

    token = (environ.get("STRATZ_API_TOKEN") or "").strip()
    if not token:
        raise ConfigError("Missing required environment variable: STRATZ_API_TOKEN")

    raw_interval = environ.get("POLL_INTERVAL_MINUTES") or environ.get("POLLING_INTERVAL")
    try:
        interval = int(raw_interval) if raw_interval else defaults["poll_interval_minutes"]
    except ValueError as exc:
        raise ConfigError(f"POLL_INTERVAL_MINUTES must be an integer, got {raw_interval!r}") from exc
    if interval < 1:
        raise ConfigError("POLL_INTERVAL_MINUTES must be at least 1")

    timezone_name = environ.get("SUMMARY_TIMEZONE") or defaults["summary_timezone"]
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown SUMMARY_TIMEZONE {timezone_name!r}") from exc

    config = Config(
        stratz_api_token=token,
        poll_interval_minutes=interval,
        weekday_summary_time=parse_summary_time(
            environ.get("DAILY_SUMMARY_WEEKDAY_TIME"), defaults["daily_summary_weekday_time"]
        ),
        weekend_summary_time=parse_summary_time(
            environ.get("DAILY_SUMMARY_WEEKEND_TIME"), defaults["daily_summary_weekend_time"]
        ),
        summary_timezone=timezone_name,
        proxy_urls=parse_proxy_urls(environ.get("PROXY_URLS")),
        state_file=Path(environ.get("STATE_FILE") or environ.get("CACHE_FILE") or defaults["state_file"]),
        watchlist_file=Path(environ.get("WATCHLIST_FILE") or defaults["watchlist_file"]),
        main_account_id=(environ.get("STEAM_ACCOUNT_ID") or "").strip() or None,
        main_account_name=environ.get("MAIN_ACCOUNT_NAME") or defaults["main_account_name"],
        friends=parse_friends(environ.get("FRIENDS_LIST")),
        webhook_url=(environ.get("WEBHOOK_URL") or "").strip() or None,
        live_notifications=parse_bool(environ.get("LIVE_NOTIFICATIONS"), True),
        new_match_notifications=parse_bool(environ.get("NEW_MATCH_NOTIFICATIONS"), True),
    )

    logger.info(
        "Configuration loaded: poll every %s min, summaries at %s (Mon-Fri) / %s (Sat-Sun) %s, %s proxies",
        config.poll_interval_minutes,
        config.weekday_summary_time.strftime("%H:%M"),
        config.weekend_summary_time.strftime("%H:%M"),
        config.summary_timezone,
        len(config.proxy_urls),
    )
    return config
