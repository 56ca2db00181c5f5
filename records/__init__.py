"""Canonical Dota 2 records for DotaKeeper.

This package turns raw STRATZ payload fragments into the immutable shapes the
watcher works with (matches, player totals, feats, live matches), normalizes
feat types, detects multi-kill clusters from kill timestamps, and holds the
hero lookup table and account id helpers.
"""
