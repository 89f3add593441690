"""
Locate user plugin: find which voice channel a member is in, and get
alerted when a member joins, switches or leaves voice.
"""

import discord
from discord import Option
from discord.ext import commands

from zeppelin.configuration.validation import strict_object
from zeppelin.core.config_manager import MatchParams
from zeppelin.core.loops import PeriodicTask
from zeppelin.core.plugin import PluginData, PluginInfo, ZeppelinPlugin
from zeppelin.database.db_connection import db_connection
from zeppelin.database.vc_alerts_repo import VCAlertsRepo
from zeppelin.plugin_utils import has_permission, send_error_message, send_success_message
from zeppelin.plugins.locate_user.util import (
    ALERT_LOOP_INTERVAL,
    fill_active_alerts_list,
    now_seconds,
    remove_outdated_alerts,
    send_alerts,
    send_leave_alerts,
    send_where,
)
from zeppelin.util.helpers import SECONDS, convert_delay_string_to_ms, humanize_duration, trim_plugin_description
from zeppelin.util.logger import get_logger

logger = get_logger("locate_user_plugin")

DEFAULT_FOLLOW_DURATION = "10m"


class LocateUserPlugin(ZeppelinPlugin):
    """Cog with ``/where`` and the ``/follow`` voice alert commands."""

    plugin_name = "locate_user"
    info = PluginInfo(
        pretty_name="Locate user",
        description=trim_plugin_description("""
            This plugin allows users with access to the commands the following:
            * Instantly receive an invite to the voice channel of a user
            * Be notified as soon as a user switches or joins a voice channel
        """),
    )

    config_schema = strict_object({
        "can_where": {"type": "boolean"},
        "can_alert": {"type": "boolean"},
    })

    default_options = {
        "config": {
            "can_where": False,
            "can_alert": False,
        },
        "overrides": [
            {
                "level": ">=50",
                "config": {
                    "can_where": True,
                    "can_alert": True,
                },
            },
        ],
    }

    follow = discord.SlashCommandGroup("follow", "Voice channel alerts")

    # --------------------------
    # Lifecycle
    # --------------------------
    async def on_load(self, plugin_data: PluginData) -> None:
        state = plugin_data.state
        state.unloaded = False
        state.users_with_alerts = []
        state.outdated_alerts_loop = PeriodicTask(
            f"locate-user-outdated-alerts:{plugin_data.guild_id}",
            lambda: remove_outdated_alerts(plugin_data),
            ALERT_LOOP_INTERVAL,
        )
        await fill_active_alerts_list(plugin_data)
        state.outdated_alerts_loop.start()

    async def on_unload(self, plugin_data: PluginData) -> None:
        await plugin_data.state.outdated_alerts_loop.stop()
        plugin_data.state.unloaded = True

    # --------------------------
    # Listeners
    # --------------------------
    @commands.Cog.listener(name="on_voice_state_update")
    async def on_voice_state_update(
        self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState
    ) -> None:
        plugin_data = self.get_plugin_data(member.guild.id)
        if plugin_data is None or member.id not in plugin_data.state.users_with_alerts:
            return

        try:
            if after.channel is not None and (before.channel is None or before.channel.id != after.channel.id):
                await send_alerts(plugin_data, member.id)
            elif after.channel is None and before.channel is not None:
                await send_leave_alerts(plugin_data, member.id, before.channel)
        except Exception:
            logger.exception("[LOCATE USER] Error sending alerts for %s", member.id)

    @commands.Cog.listener(name="on_member_ban")
    async def on_member_ban(self, guild: discord.Guild, user: discord.User) -> None:
        plugin_data = self.get_plugin_data(guild.id)
        if plugin_data is None:
            return

        async with db_connection.transaction() as conn:
            await VCAlertsRepo.delete_for_user(conn, guild.id, user.id)
        await fill_active_alerts_list(plugin_data)

    # --------------------------
    # Commands
    # --------------------------
    async def _resolve_with_permission(self, ctx: discord.ApplicationContext, permission: str) -> PluginData | None:
        plugin_data = await self.resolve_plugin_data(ctx)
        if plugin_data is None:
            return None

        if not has_permission(plugin_data, permission, MatchParams(member=ctx.author, channel=ctx.channel)):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return None
        return plugin_data

    @commands.slash_command(name="where", description="Posts an instant invite to the voice channel that the user is in")
    async def where(
        self,
        ctx: discord.ApplicationContext,
        member: Option(discord.Member, "The user to locate", required=True),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_with_permission(ctx, "can_where")
        if plugin_data is None:
            return

        await send_where(plugin_data, member, ctx, "")

    @follow.command(name="add", description="Get notified when a user joins or switches voice channels")
    async def follow_add(
        self,
        ctx: discord.ApplicationContext,
        member: Option(discord.Member, "The user to follow", required=True),  # type: ignore
        duration: Option(str, "How long to follow the user, e.g. 30m, 2h", default=DEFAULT_FOLLOW_DURATION),  # type: ignore
        reminder: Option(str, "Text to remind you of why you follow", default="None"),  # type: ignore
        active: Option(bool, "Also move you into the user's voice channel", default=False),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_with_permission(ctx, "can_alert")
        if plugin_data is None:
            return

        duration_ms = convert_delay_string_to_ms(duration, "m")
        if not duration_ms:
            await send_error_message(plugin_data, ctx, "Invalid duration")
            return

        async with db_connection.transaction() as conn:
            await VCAlertsRepo.add(
                conn,
                plugin_data.guild_id,
                ctx.author.id,
                member.id,
                ctx.channel.id,
                now_seconds() + duration_ms // SECONDS,
                reminder,
                active,
            )
        if member.id not in plugin_data.state.users_with_alerts:
            plugin_data.state.users_with_alerts.append(member.id)

        if active:
            await send_success_message(
                plugin_data,
                ctx,
                f"Every time <@{member.id}> joins or switches VC in the next {humanize_duration(duration_ms)} "
                "i will notify and move you.\nPlease make sure to be in a voice channel, otherwise i cannot move you!",
            )
        else:
            await send_success_message(
                plugin_data,
                ctx,
                f"Every time <@{member.id}> joins or switches VC in the next {humanize_duration(duration_ms)} "
                "I will notify you",
            )

    @follow.command(name="list", description="List your active voice alerts")
    async def follow_list(self, ctx: discord.ApplicationContext) -> None:
        plugin_data = await self._resolve_with_permission(ctx, "can_alert")
        if plugin_data is None:
            return

        async with db_connection.read() as conn:
            alerts = await VCAlertsRepo.get_by_requestor(conn, plugin_data.guild_id, ctx.author.id)
        if not alerts:
            await send_error_message(plugin_data, ctx, "You have no active alerts!")
            return

        now = now_seconds()
        lines = []
        for index, alert in enumerate(alerts, start=1):
            remaining = humanize_duration(max(alert.expires_at - now, 0) * SECONDS)
            lines.append(
                f"`#{index}` Target <@{alert.user_id}>, expires in {remaining}, "
                f"reminder `{alert.body}`, active: {'yes' if alert.active else 'no'}"
            )
        await ctx.respond("Active alerts:\n" + "\n".join(lines))

    @follow.command(name="delete", description="Delete one of your voice alerts")
    async def follow_delete(
        self,
        ctx: discord.ApplicationContext,
        num: Option(int, "Number of the alert from /follow list", required=True),  # type: ignore
    ) -> None:
        plugin_data = await self._resolve_with_permission(ctx, "can_alert")
        if plugin_data is None:
            return

        async with db_connection.read() as conn:
            alerts = await VCAlertsRepo.get_by_requestor(conn, plugin_data.guild_id, ctx.author.id)
        if not alerts:
            await send_error_message(plugin_data, ctx, "You have no active alerts!")
            return
        if num < 1 or num > len(alerts):
            await send_error_message(plugin_data, ctx, "Unknown alert!")
            return

        async with db_connection.transaction() as conn:
            await VCAlertsRepo.delete(conn, plugin_data.guild_id, alerts[num - 1].id)
        await fill_active_alerts_list(plugin_data)
        await send_success_message(plugin_data, ctx, "Alert deleted")
