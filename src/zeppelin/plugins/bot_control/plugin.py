"""
Bot control plugin (global): owner-only commands to reload plugins at runtime.
"""

import discord
from discord.ext import commands

from zeppelin.core.plugin import PluginData, PluginInfo, ZeppelinPlugin
from zeppelin.plugin_utils import is_owner_pre_filter, send_error_message, send_success_message
from zeppelin.plugins.bot_control.active_reload import get_active_reload, reset_active_reload, set_active_reload
from zeppelin.util.logger import get_logger

logger = get_logger("bot_control_plugin")


class BotControlPlugin(ZeppelinPlugin):
    plugin_name = "bot_control"
    info = PluginInfo(pretty_name="Bot control")
    show_in_docs = False
    is_global = True

    async def on_load(self, plugin_data: PluginData) -> None:
        active_reload = get_active_reload()
        if active_reload is None:
            return

        _guild_id, channel_id = active_reload
        reset_active_reload()

        channel = plugin_data.client.get_channel(channel_id)
        if not isinstance(channel, discord.abc.Messageable):
            logger.warning("[BOT CONTROL] Reload channel %s not found", channel_id)
            return

        try:
            await channel.send("Global plugins reloaded!")
        except discord.HTTPException as exc:
            logger.warning("[BOT CONTROL] Failed to announce reload in %s: %s", channel_id, exc)

    @commands.slash_command(name="bot_reload_global_plugins", description="Reload the global plugins")
    @commands.check(is_owner_pre_filter)
    async def reload_global_plugins_cmd(self, ctx: discord.ApplicationContext) -> None:
        plugin_data = await self.resolve_plugin_data(ctx)
        if plugin_data is None:
            return
        if get_active_reload():
            await ctx.respond("A reload is already in progress.", ephemeral=True)
            return

        set_active_reload(ctx.guild.id if ctx.guild else None, ctx.channel.id)
        await ctx.respond("Reloading global plugins...")
        logger.info("[BOT CONTROL] Global plugin reload requested by %s", ctx.author.id)

        if not await plugin_data.get_manager().reload_all_global_plugins():
            reset_active_reload()
            await send_error_message(plugin_data, ctx, "Failed to reload global plugins, check the logs")

    @commands.slash_command(name="reload_guild", description="Reload the plugins of this server")
    @commands.check(is_owner_pre_filter)
    async def reload_guild(self, ctx: discord.ApplicationContext) -> None:
        plugin_data = await self.resolve_plugin_data(ctx)
        if plugin_data is None:
            return
        if ctx.guild is None:
            await send_error_message(plugin_data, ctx, "This command can only be used in a server")
            return

        await ctx.respond("Reloading...")
        if await plugin_data.get_manager().reload_guild(ctx.guild):
            await send_success_message(plugin_data, ctx, "Reloaded!")
        else:
            await send_error_message(plugin_data, ctx, "Failed to reload, check the logs")
