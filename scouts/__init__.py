"""Scouts package for DotaKeeper account watching and notification delivery.

This module group polls STRATZ for every tracked player, diffs the results
against the persisted dedup state, detects multi-kill feats, live games and
rank changes, and hands notification events to a queue that dispatches them
to the log or a chat webhook. It also contains configuration loading, the
watchlist, the daily-summary scheduler helpers, logging support and the CLI
entry point in `scouts.runner`.
"""
