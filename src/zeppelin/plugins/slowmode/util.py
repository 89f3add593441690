"""
Slowmode mechanics shared by the slowmode commands, the message listener
and the expiry loop.

Two kinds of slowmode exist:

* **native**: Discord's own per-channel ``slowmode_delay``, capped at 6 hours;
* **bot**: for longer delays (or when native slowmode is disabled in the
  config). After a user posts, the bot denies them ``send_messages`` in the
  channel through a permission overwrite and records when that expires.
"""

from __future__ import annotations

import time
from typing import List

import discord

from zeppelin.core.plugin import PluginData
from zeppelin.database.db_connection import db_connection
from zeppelin.database.slowmode_repo import SlowmodeRepo
from zeppelin.util.helpers import safe_delete_message
from zeppelin.util.logger import get_logger

logger = get_logger("slowmode")

NATIVE_SLOWMODE_LIMIT = 6 * 60 * 60  # seconds
BOT_SLOWMODE_CLEAR_INTERVAL = 60  # seconds

MODE_NATIVE = "native"
MODE_BOT = "bot"
MODE_DISABLED = "disabled"


def now_seconds() -> int:
    return int(time.time())


async def get_bot_slowmode_seconds(plugin_data: PluginData, channel_id: int) -> int:
    """Return the bot slowmode of the channel in seconds, 0 if there is none."""
    async with db_connection.read() as conn:
        record = await SlowmodeRepo.get_channel_slowmode(conn, plugin_data.guild_id, channel_id)
    return record.slowmode_seconds if record else 0


async def _resolve_member(guild: discord.Guild, user_id: int) -> discord.Member | None:
    member = guild.get_member(user_id)
    if member is not None:
        return member
    try:
        return await guild.fetch_member(user_id)
    except discord.NotFound:
        return None


async def apply_bot_slowmode_to_user(plugin_data: PluginData, channel: discord.TextChannel, member: discord.Member) -> bool:
    """
    Deny ``member`` from sending messages in ``channel`` until the bot slowmode expires.

    Returns:
        bool: True if the overwrite was applied and recorded.
    """
    slowmode_seconds = await get_bot_slowmode_seconds(plugin_data, channel.id)
    if slowmode_seconds <= 0:
        return False

    overwrite = channel.overwrites_for(member)
    overwrite.send_messages = False
    try:
        await channel.set_permissions(member, overwrite=overwrite, reason="Bot slowmode")
    except discord.HTTPException as exc:
        logger.warning(
            "[SLOWMODE] Failed to apply bot slowmode to %s in #%s (%s): %s",
            member.id, channel.name, channel.id, exc,
        )
        return False

    async with db_connection.transaction() as conn:
        await SlowmodeRepo.add_user_slowmode(
            conn, plugin_data.guild_id, channel.id, member.id, now_seconds() + slowmode_seconds
        )
    return True


async def clear_bot_slowmode_from_user(
    plugin_data: PluginData,
    channel: discord.TextChannel,
    user_id: int,
    force: bool = False,
) -> bool:
    """
    Lift a user's bot slowmode in ``channel``.

    The ``send_messages`` deny is removed from the user's overwrite (the
    overwrite is deleted if nothing else is left in it). Members who left the
    guild just lose their record. With ``force`` the record is removed even
    if the overwrite could not be edited.

    Returns:
        bool: True if the user's slowmode is gone afterwards.
    """
    guild_id = plugin_data.guild_id
    member = await _resolve_member(channel.guild, user_id)

    if member is not None:
        overwrite = channel.overwrites_for(member)
        overwrite.send_messages = None
        try:
            await channel.set_permissions(
                member,
                overwrite=None if overwrite.is_empty() else overwrite,
                reason="Clearing bot slowmode",
            )
        except discord.HTTPException as exc:
            logger.warning(
                "[SLOWMODE] Failed to clear bot slowmode from %s in #%s (%s): %s",
                user_id, channel.name, channel.id, exc,
            )
            if not force:
                return False

    async with db_connection.transaction() as conn:
        await SlowmodeRepo.delete_user_slowmode(conn, guild_id, channel.id, user_id)
    return True


async def disable_bot_slowmode(plugin_data: PluginData, channel: discord.TextChannel) -> List[int]:
    """
    Remove the channel's bot slowmode and lift it from every affected user.

    Returns:
        List[int]: Ids of users whose overwrite could not be cleared.
    """
    guild_id = plugin_data.guild_id
    async with db_connection.transaction() as conn:
        await SlowmodeRepo.delete_channel_slowmode(conn, guild_id, channel.id)

    async with db_connection.read() as conn:
        user_slowmodes = await SlowmodeRepo.get_channel_user_slowmodes(conn, guild_id, channel.id)

    failed: List[int] = []
    for record in user_slowmodes:
        if not await clear_bot_slowmode_from_user(plugin_data, channel, record.user_id):
            # Overwrite has to be fixed by hand; the record goes regardless
            failed.append(record.user_id)
            async with db_connection.transaction() as conn:
                await SlowmodeRepo.delete_user_slowmode(conn, guild_id, channel.id, record.user_id)

    logger.info("[SLOWMODE] Bot slowmode disabled in #%s (%s)", channel.name, channel.id)
    return failed


async def actually_set_slowmode(plugin_data: PluginData, channel: discord.TextChannel, seconds: int) -> str:
    """
    Set the slowmode of ``channel``, choosing native or bot slowmode.

    Native slowmode is used when the config allows it and ``seconds`` fits
    within Discord's limit; otherwise a bot slowmode is set. Setting one
    kind clears the other. Zero disables both.

    Returns:
        str: The mode now in effect (``"native"``, ``"bot"`` or ``"disabled"``).

    Raises:
        discord.HTTPException: If the channel could not be edited.
    """
    if seconds <= 0:
        await disable_bot_slowmode(plugin_data, channel)
        if channel.slowmode_delay:
            await channel.edit(slowmode_delay=0)
        return MODE_DISABLED

    config = plugin_data.config.get_for_channel(channel)
    use_native = config["use_native_slowmode"] and seconds <= NATIVE_SLOWMODE_LIMIT

    if use_native:
        if await get_bot_slowmode_seconds(plugin_data, channel.id):
            await disable_bot_slowmode(plugin_data, channel)
        await channel.edit(slowmode_delay=seconds)
        logger.info("[SLOWMODE] Native slowmode of %ds set in #%s (%s)", seconds, channel.name, channel.id)
        return MODE_NATIVE

    if channel.slowmode_delay:
        await channel.edit(slowmode_delay=0)

    async with db_connection.transaction() as conn:
        await SlowmodeRepo.set_channel_slowmode(conn, plugin_data.guild_id, channel.id, seconds)
    logger.info("[SLOWMODE] Bot slowmode of %ds set in #%s (%s)", seconds, channel.name, channel.id)
    return MODE_BOT


async def on_message_create(plugin_data: PluginData, message: discord.Message) -> None:
    """Apply the channel's bot slowmode to the author, or remove the message if it already applies."""
    if message.author.bot or not isinstance(message.author, discord.Member):
        return
    if not isinstance(message.channel, discord.TextChannel):
        return

    channel = message.channel
    if not await get_bot_slowmode_seconds(plugin_data, channel.id):
        return

    config = plugin_data.config.get_for_message(message)
    if not config["is_affected"]:
        return

    async with db_connection.read() as conn:
        existing = await SlowmodeRepo.get_user_slowmode(conn, plugin_data.guild_id, channel.id, message.author.id)

    if existing is not None:
        # Sent before the overwrite took effect
        await safe_delete_message(message)
        return

    await apply_bot_slowmode_to_user(plugin_data, channel, message.author)


async def clear_expired_slowmodes(plugin_data: PluginData) -> None:
    """Lift every user slowmode of the guild whose time is up."""
    guild = plugin_data.guild
    async with db_connection.read() as conn:
        expired = await SlowmodeRepo.get_expired_user_slowmodes(conn, guild.id, now_seconds())

    for record in expired:
        channel = guild.get_channel(record.channel_id)
        if not isinstance(channel, discord.TextChannel):
            async with db_connection.transaction() as conn:
                await SlowmodeRepo.delete_user_slowmode(conn, guild.id, record.channel_id, record.user_id)
            continue

        await clear_bot_slowmode_from_user(plugin_data, channel, record.user_id, force=True)

    if expired:
        logger.debug("[SLOWMODE] Processed %d expired user slowmodes in guild %s", len(expired), guild.id)
