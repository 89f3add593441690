"""
Slowmode plugin: native and bot-managed channel slowmodes.

Commands live under ``/slowmode``. Every command requires ``can_manage``.
Bot slowmode applies to members for whom ``is_affected`` is true.
"""

import discord
from discord import Option
from discord.ext import commands

from zeppelin.configuration.validation import strict_object
from zeppelin.core.config_manager import MatchParams
from zeppelin.core.loops import PeriodicTask
from zeppelin.core.plugin import PluginData, PluginInfo, ZeppelinPlugin
from zeppelin.database.db_connection import db_connection
from zeppelin.database.slowmode_repo import SlowmodeRepo
from zeppelin.plugin_utils import has_permission, map_to_public_fn, send_error_message, send_success_message
from zeppelin.plugins.slowmode.util import (
    BOT_SLOWMODE_CLEAR_INTERVAL,
    MODE_BOT,
    MODE_DISABLED,
    actually_set_slowmode,
    clear_bot_slowmode_from_user,
    clear_expired_slowmodes,
    disable_bot_slowmode,
    get_bot_slowmode_seconds,
    on_message_create,
)
from zeppelin.util.helpers import SECONDS, convert_delay_string_to_ms, humanize_duration
from zeppelin.util.logger import get_logger

logger = get_logger("slowmode_plugin")


class SlowmodePlugin(ZeppelinPlugin):
    """Cog containing the slowmode commands and the bot slowmode message listener."""

    plugin_name = "slowmode"
    info = PluginInfo(pretty_name="Slowmode")

    config_schema = strict_object({
        "use_native_slowmode": {"type": "boolean"},
        "can_manage": {"type": "boolean"},
        "is_affected": {"type": "boolean"},
    })

    default_options = {
        "config": {
            "use_native_slowmode": True,
            "can_manage": False,
            "is_affected": True,
        },
        "overrides": [
            {
                "level": ">=50",
                "config": {
                    "can_manage": True,
                    "is_affected": False,
                },
            },
        ],
    }

    public_functions = {
        "set_slowmode": map_to_public_fn(actually_set_slowmode),
    }

    slowmode = discord.SlashCommandGroup("slowmode", "Manage channel slowmodes")

    # --------------------------
    # Lifecycle
    # --------------------------
    def on_load(self, plugin_data: PluginData) -> None:
        state = plugin_data.state
        state.clear_loop = PeriodicTask(
            f"slowmode-clear:{plugin_data.guild_id}",
            lambda: clear_expired_slowmodes(plugin_data),
            BOT_SLOWMODE_CLEAR_INTERVAL,
        )
        state.clear_loop.start()

    async def on_unload(self, plugin_data: PluginData) -> None:
        await plugin_data.state.clear_loop.stop()

    # --------------------------
    # Listener
    # --------------------------
    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None:
            return
        plugin_data = self.get_plugin_data(message.guild.id)
        if plugin_data is None:
            return

        try:
            await on_message_create(plugin_data, message)
        except Exception:
            logger.exception("[SLOWMODE] Error handling message %s", message.id)

    # --------------------------
    # Commands
    # --------------------------
    async def _resolve_for_command(self, ctx: discord.ApplicationContext) -> PluginData | None:
        plugin_data = await self.resolve_plugin_data(ctx)
        if plugin_data is None:
            return None

        if not has_permission(plugin_data, "can_manage", MatchParams(member=ctx.author, channel=ctx.channel)):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return None
        return plugin_data

    async def _resolve_text_channel(self, ctx, plugin_data, channel) -> discord.TextChannel | None:
        channel = channel or ctx.channel
        if not isinstance(channel, discord.TextChannel):
            await send_error_message(plugin_data, ctx, "Slowmode can only be used in text channels")
            return None
        return channel

    @slowmode.command(name="set", description="Set the slowmode of a channel")
    async def set_slowmode(
        self,
        ctx: discord.ApplicationContext,
        time: Option(str, "Slowmode length, e.g. 30s, 5m, 12h. 0 disables it.", required=True),  # type: ignore
        channel: Option(discord.TextChannel, "Channel to set the slowmode in", required=False, default=None),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_for_command(ctx)
        if plugin_data is None:
            return
        channel = await self._resolve_text_channel(ctx, plugin_data, channel)
        if channel is None:
            return

        ms = convert_delay_string_to_ms(time, "s")
        if ms is None:
            await send_error_message(plugin_data, ctx, "Invalid slowmode time")
            return
        seconds = ms // SECONDS

        try:
            mode = await actually_set_slowmode(plugin_data, channel, seconds)
        except discord.Forbidden:
            await send_error_message(plugin_data, ctx, f"Missing permissions to set slowmode in <#{channel.id}>")
            return

        if mode == MODE_DISABLED:
            await send_success_message(plugin_data, ctx, f"Slowmode disabled in <#{channel.id}>")
            return

        suffix = " (bot slowmode)" if mode == MODE_BOT else ""
        await send_success_message(
            plugin_data, ctx, f"Set {humanize_duration(seconds * SECONDS)} slowmode for <#{channel.id}>{suffix}"
        )

    @slowmode.command(name="get", description="Show the slowmode of a channel")
    async def get_slowmode(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to check", required=False, default=None),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_for_command(ctx)
        if plugin_data is None:
            return
        channel = await self._resolve_text_channel(ctx, plugin_data, channel)
        if channel is None:
            return

        if channel.slowmode_delay:
            await ctx.respond(
                f"<#{channel.id}> has a native slowmode of {humanize_duration(channel.slowmode_delay * SECONDS)}"
            )
            return

        bot_seconds = await get_bot_slowmode_seconds(plugin_data, channel.id)
        if bot_seconds:
            await ctx.respond(f"<#{channel.id}> has a bot slowmode of {humanize_duration(bot_seconds * SECONDS)}")
            return

        await ctx.respond(f"<#{channel.id}> does not have slowmode")

    @slowmode.command(name="list", description="List channels with slowmode")
    async def list_slowmodes(self, ctx: discord.ApplicationContext) -> None:
        plugin_data = await self._resolve_for_command(ctx)
        if plugin_data is None:
            return

        guild = plugin_data.guild
        lines = []
        bot_slowmode_channel_ids = set()

        async with db_connection.read() as conn:
            bot_slowmodes = await SlowmodeRepo.get_channel_slowmodes(conn, guild.id)
        for record in bot_slowmodes:
            bot_slowmode_channel_ids.add(record.channel_id)
            lines.append(f"<#{record.channel_id}>: {humanize_duration(record.slowmode_seconds * SECONDS)} (bot)")

        for text_channel in guild.text_channels:
            if text_channel.slowmode_delay and text_channel.id not in bot_slowmode_channel_ids:
                lines.append(f"<#{text_channel.id}>: {humanize_duration(text_channel.slowmode_delay * SECONDS)} (native)")

        if not lines:
            await ctx.respond("No active slowmodes!")
            return

        await ctx.respond("Channels with slowmode:\n" + "\n".join(lines))

    @slowmode.command(name="disable", description="Disable the slowmode of a channel")
    async def disable_slowmode(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to disable slowmode in", required=False, default=None),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_for_command(ctx)
        if plugin_data is None:
            return
        channel = await self._resolve_text_channel(ctx, plugin_data, channel)
        if channel is None:
            return

        if not channel.slowmode_delay and not await get_bot_slowmode_seconds(plugin_data, channel.id):
            await send_error_message(plugin_data, ctx, "Channel is not on slowmode!")
            return

        failed_users = await disable_bot_slowmode(plugin_data, channel)
        try:
            if channel.slowmode_delay:
                await channel.edit(slowmode_delay=0)
        except discord.Forbidden:
            await send_error_message(plugin_data, ctx, f"Missing permissions to disable native slowmode in <#{channel.id}>")
            return

        if failed_users:
            mentions = ", ".join(f"<@{user_id}>" for user_id in failed_users)
            await send_error_message(
                plugin_data, ctx, f"Slowmode disabled! Failed to clear slowmode from the following users: {mentions}"
            )
            return

        await send_success_message(plugin_data, ctx, "Slowmode disabled!")

    @slowmode.command(name="clear", description="Clear the bot slowmode of a user in a channel")
    async def clear_slowmode(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to clear the slowmode in", required=True),  # type: ignore
        user: Option(discord.Member, "User whose slowmode to clear", required=True),  # type: ignore
        force: Option(bool, "Remove the record even if the permission overwrite cannot be edited", default=False),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_for_command(ctx)
        if plugin_data is None:
            return

        if not await get_bot_slowmode_seconds(plugin_data, channel.id):
            await send_error_message(plugin_data, ctx, "Channel doesn't have a bot slowmode!")
            return

        async with db_connection.read() as conn:
            record = await SlowmodeRepo.get_user_slowmode(conn, plugin_data.guild_id, channel.id, user.id)
        if record is None:
            await send_error_message(plugin_data, ctx, f"<@{user.id}> is not on slowmode in <#{channel.id}>")
            return

        if not await clear_bot_slowmode_from_user(plugin_data, channel, user.id, force):
            await send_error_message(plugin_data, ctx, f"Failed to clear slowmode from <@{user.id}> in <#{channel.id}>")
            return

        await send_success_message(plugin_data, ctx, f"Slowmode cleared from <@{user.id}> in <#{channel.id}>")

