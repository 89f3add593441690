"""Tracks the channel a global plugin reload was requested from, across the reload itself."""

from typing import Optional, Tuple

_active_reload: Optional[Tuple[Optional[int], int]] = None


def get_active_reload() -> Optional[Tuple[Optional[int], int]]:
    """Return ``(guild_id, channel_id)`` of the reload in progress, or None."""
    return _active_reload


def set_active_reload(guild_id: Optional[int], channel_id: int) -> None:
    global _active_reload
    _active_reload = (guild_id, channel_id)


def reset_active_reload() -> None:
    global _active_reload
    _active_reload = None
