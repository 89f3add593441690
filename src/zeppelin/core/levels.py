"""Member permission levels and permission lookups."""

from __future__ import annotations

from typing import Any, Mapping

import discord

from zeppelin.core.plugin import PluginData, guild_config_of

OWNER_LEVEL = 100
DEFAULT_LEVEL = 0


def get_member_level(plugin_data: PluginData, member: discord.Member) -> int:
    """
    Return the permission level of ``member`` in the plugin's guild.

    The guild owner is always level 100. Otherwise the highest level among
    the ``levels`` entries for the member's id and role ids applies; members
    without an entry are level 0.
    """
    guild = getattr(member, "guild", None) or plugin_data.guild
    if guild is not None and guild.owner_id == member.id:
        return OWNER_LEVEL

    guild_config = guild_config_of(plugin_data)
    if guild_config is None:
        return DEFAULT_LEVEL

    levels = guild_config.levels
    candidates = [levels[str(member.id)]] if str(member.id) in levels else []
    for role in getattr(member, "roles", []):
        if str(role.id) in levels:
            candidates.append(levels[str(role.id)])

    return max(candidates, default=DEFAULT_LEVEL)


def has_permission(config: Mapping[str, Any], permission: str) -> bool:
    """Return True if the value at the dotted path ``permission`` in ``config`` is exactly True."""
    value: Any = config
    for part in permission.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return False
        value = value[part]
    return value is True
