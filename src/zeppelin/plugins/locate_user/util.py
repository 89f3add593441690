"""Voice channel locating and alert delivery for the locate_user plugin."""

from __future__ import annotations

import time
from typing import Any

import discord

from zeppelin.core.plugin import PluginData
from zeppelin.database.db_connection import db_connection
from zeppelin.database.vc_alerts_repo import VCAlertsRepo
from zeppelin.plugin_utils import reply_to, send_error_message
from zeppelin.util.logger import get_logger

logger = get_logger("locate_user")

ALERT_LOOP_INTERVAL = 30  # seconds


def now_seconds() -> int:
    return int(time.time())


async def create_or_reuse_invite(voice: discord.VoiceChannel) -> discord.Invite:
    """Return the first existing invite of ``voice``, creating one if there is none."""
    existing_invites = await voice.invites()
    if existing_invites:
        return existing_invites[0]

    return await voice.create_invite()


async def send_where(plugin_data: PluginData, member: discord.Member, channel: Any, prepend: str) -> None:
    """
    Tell ``channel`` which voice channel ``member`` is in, with an invite link.

    Args:
        plugin_data: The locate_user plugin data.
        member: The member to locate.
        channel: Where to send the answer (a channel or a slash command context).
        prepend: Text placed before the answer.
    """
    voice = member.voice.channel if member.voice else None

    if voice is None:
        await reply_to(channel, prepend + "That user is not in a channel")
        return

    try:
        invite = await create_or_reuse_invite(voice)
    except discord.HTTPException as exc:
        logger.warning("[LOCATE USER] Cannot create an invite to %s (%s): %s", voice.name, voice.id, exc)
        await send_error_message(plugin_data, channel, "Cannot create an invite to that channel!")
        return

    await reply_to(channel, prepend + f"{member.mention} is in the following channel: `{voice.name}` {invite.url}")


async def move_member(
    plugin_data: PluginData,
    to_move: discord.Member,
    target: discord.Member,
    error_channel: Any,
) -> None:
    """Move ``to_move`` into the voice channel of ``target``."""
    if to_move.voice is None or to_move.voice.channel is None:
        await send_error_message(plugin_data, error_channel, "**Failed to move you.** Are you in a voice channel?")
        return
    if target.voice is None or target.voice.channel is None:
        return

    try:
        await to_move.move_to(target.voice.channel, reason="Voice channel alert")
    except discord.HTTPException as exc:
        logger.warning("[LOCATE USER] Failed to move %s to %s: %s", to_move.id, target.voice.channel.id, exc)
        await send_error_message(plugin_data, error_channel, "**Failed to move you.** Are you in a voice channel?")


async def fill_active_alerts_list(plugin_data: PluginData) -> None:
    """Rebuild ``state.users_with_alerts`` from storage."""
    async with db_connection.read() as conn:
        alerts = await VCAlertsRepo.get_all(conn, plugin_data.guild_id)

    users = []
    for alert in alerts:
        if alert.user_id not in users:
            users.append(alert.user_id)
    plugin_data.state.users_with_alerts = users


async def remove_outdated_alerts(plugin_data: PluginData) -> None:
    """Delete expired alerts and refresh the in-memory list."""
    if plugin_data.state.unloaded:
        return

    async with db_connection.transaction() as conn:
        await VCAlertsRepo.delete_expired(conn, plugin_data.guild_id, now_seconds())
    await fill_active_alerts_list(plugin_data)


async def send_alerts(plugin_data: PluginData, user_id: int) -> None:
    """Deliver every alert on ``user_id``; active alerts also pull the requestor into the user's channel."""
    guild = plugin_data.guild
    member = guild.get_member(user_id)
    if member is None:
        return

    async with db_connection.read() as conn:
        alerts = await VCAlertsRepo.get_by_user(conn, guild.id, user_id)

    now = now_seconds()
    for alert in alerts:
        if alert.expires_at <= now:
            continue

        channel = guild.get_channel(alert.channel_id)
        if channel is None:
            logger.debug("[LOCATE USER] Alert channel %s no longer exists", alert.channel_id)
            continue

        prepend = f"<@!{alert.requestor_id}>, an alert requested by you has triggered!\nReminder: `{alert.body}`\n"
        await send_where(plugin_data, member, channel, prepend)

        if alert.active:
            requestor = guild.get_member(alert.requestor_id)
            if requestor is not None:
                await move_member(plugin_data, requestor, member, channel)


async def send_leave_alerts(plugin_data: PluginData, user_id: int, voice_channel: discord.abc.GuildChannel) -> None:
    guild = plugin_data.guild
    async with db_connection.read() as conn:
        alerts = await VCAlertsRepo.get_by_user(conn, guild.id, user_id)

    now = now_seconds()
    for alert in alerts:
        if alert.expires_at <= now:
            continue
        channel = guild.get_channel(alert.channel_id)
        if channel is None:
            continue
        await channel.send(
            f"🔴 <@!{alert.requestor_id}> the user <@!{alert.user_id}> disconnected out of `{voice_channel.name}`"
        )
