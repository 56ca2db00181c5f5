"""Account id helpers shared by the watchlist and the record mapper."""

# Native Dota 2 account id = 64-bit Steam id - offset.
STEAM_ID_OFFSET = 76561197960265728
STEAM_ID_PREFIX = "76561"
STEAM_ID_LENGTH = 17


def is_steam_id(value) -> bool:
    text = str(value or "").strip()
    return text.isdigit() and text.startswith(STEAM_ID_PREFIX) and len(text) == STEAM_ID_LENGTH


def to_native_account_id(value) -> str:
    """Return the native account id for a Steam id, or the stripped value unchanged."""
    text = str(value if value is not None else "").strip()
    if is_steam_id(text):
        return str(int(text) - STEAM_ID_OFFSET)
    return text
