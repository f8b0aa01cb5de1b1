"""Utility helpers shared across the bot."""

import html
import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

_ID_ALPHABET = string.ascii_lowercase + string.digits


def utc_now() -> datetime:
    """
    Get current UTC time.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def generate_game_id() -> str:
    """
    Generate a process-unique game ID.

    Millisecond timestamp plus a random 7-character suffix, e.g.
    ``game_1718000000000_k3j9x0a``. Contains no colons, so it is safe
    inside colon-delimited callback payloads.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"game_{int(time.time() * 1000)}_{suffix}"


def escape_html(text: Optional[str]) -> str:
    """Escape user-supplied text for HTML parse mode."""
    return html.escape(text or "", quote=False)


def format_credits(amount: int) -> str:
    """Format a credit amount with thousands separators."""
    return f"{amount:,} credits"
