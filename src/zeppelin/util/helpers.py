"""
helpers.py
==========

Stateless helpers shared by every plugin: time units, delay-string parsing,
duration formatting and the success/error message decorations.
"""

import re
import textwrap

import discord

from zeppelin.util.logger import get_logger

logger = get_logger("helpers")

# Millisecond-based units, matching what the storage layer and timers expect
SECONDS = 1000
MINUTES = 60 * SECONDS
HOURS = 60 * MINUTES
DAYS = 24 * HOURS
WEEKS = 7 * DAYS

DEFAULT_SUCCESS_EMOJI = "👌"
DEFAULT_ERROR_EMOJI = "⚠"

DELAY_UNITS = {
    "w": WEEKS,
    "d": DAYS,
    "h": HOURS,
    "m": MINUTES,
    "s": SECONDS,
    "x": 1,
}

DELAY_PART_PATTERN = re.compile(r"^([0-9]+)\s*([wdhmsx])?[a-z]*\s*", re.IGNORECASE)


def convert_delay_string_to_ms(text: str, default_unit: str = "m") -> int | None:
    """
    Convert a delay string such as ``"1h30m"`` or ``"90"`` to milliseconds.

    Args:
        text (str): The delay string. Parts may be separated by whitespace.
        default_unit (str): Unit applied to parts without an explicit unit.

    Returns:
        int | None: The delay in milliseconds, or None if the string is not a valid delay.
    """
    remaining = text.strip()
    if not remaining:
        return None

    total = 0
    while remaining:
        match = DELAY_PART_PATTERN.match(remaining)
        if match is None:
            return None

        unit = (match.group(2) or default_unit).lower()
        total += int(match.group(1)) * DELAY_UNITS[unit]
        remaining = remaining[match.end():]

    return total


def humanize_duration(ms: int) -> str:
    """
    Convert a duration in milliseconds to a readable string like ``"1 hour, 5 minutes"``.

    Args:
        ms (int): Duration in milliseconds.

    Returns:
        str: Human-readable duration; ``"0 seconds"`` for anything below one second.
    """
    parts = []
    remaining = int(ms)
    for name, size in (("week", WEEKS), ("day", DAYS), ("hour", HOURS), ("minute", MINUTES), ("second", SECONDS)):
        amount, remaining = divmod(remaining, size)
        if amount:
            parts.append(f"{amount} {name}{'s' if amount != 1 else ''}")

    return ", ".join(parts) if parts else "0 seconds"


def success_message(text: str, emoji: str | None = DEFAULT_SUCCESS_EMOJI) -> str:
    return f"{emoji} {text}" if emoji else text


def error_message(text: str, emoji: str | None = DEFAULT_ERROR_EMOJI) -> str:
    return f"{emoji} {text}" if emoji else text


def trim_plugin_description(text: str) -> str:
    """Dedent a multi-line plugin description and strip surrounding blank lines."""
    return textwrap.dedent(text).strip()


def disable_code_blocks(content: str) -> str:
    return content.replace("`", "`​")


def verbose_user_mention(user: discord.abc.User) -> str:
    return f"<@!{user.id}> (**{user.name}**, `{user.id}`)"


def verbose_channel_mention(channel: discord.abc.GuildChannel) -> str:
    return f"<#{channel.id}> (**#{channel.name}**, `{channel.id}`)"


async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Args:
        message (discord.Message): The message to delete.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("No permission to delete message %s", message.id)
    except discord.HTTPException as exc:
        logger.error("Error deleting message %s: %s", message.id, exc)
    return False
