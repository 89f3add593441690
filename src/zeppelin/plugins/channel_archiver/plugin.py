"""
Channel archiver plugin: dump a channel's message history into a text file.

The single command is restricted to bot owners.
"""

import io
import json
from datetime import datetime, timezone
from typing import List

import discord
from discord import Option
from discord.ext import commands

from zeppelin.core.plugin import PluginInfo, ZeppelinPlugin
from zeppelin.plugin_utils import is_owner_pre_filter, send_error_message
from zeppelin.plugins.channel_archiver.rehost_attachment import rehost_attachment
from zeppelin.util.logger import get_logger

logger = get_logger("channel_archiver_plugin")

MAX_ARCHIVED_MESSAGES = 5000
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


async def format_archived_message(message: discord.Message, attachment_channel: discord.TextChannel | None) -> str:
    """Render one message as an archive entry, rehosting its attachments when ``attachment_channel`` is set."""
    timestamp = message.created_at.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
    content = message.content or "<no text content>"
    entry = f"[{timestamp}] [{message.author.id}] [{message.author}]: {content}"

    for embed in message.embeds:
        entry += f"\n-- Embed: {json.dumps(embed.to_dict())}"

    for attachment in message.attachments:
        if attachment_channel is not None:
            url = await rehost_attachment(attachment, attachment_channel)
        else:
            url = attachment.url
        entry += f"\n-- Attachment: {url}"

    if message.reactions:
        reactions = ", ".join(f"{reaction.emoji}: {reaction.count}" for reaction in message.reactions)
        entry += f"\n-- Reactions: {reactions}"

    return entry


async def build_channel_archive(
    channel: discord.TextChannel,
    archived_by: discord.abc.User,
    limit: int,
    attachment_channel: discord.TextChannel | None = None,
) -> str:
    """Return the archive of the latest ``limit`` messages of ``channel``, oldest first."""
    entries: List[str] = []
    async for message in channel.history(limit=limit, oldest_first=False):
        entries.append(await format_archived_message(message, attachment_channel))
    entries.reverse()

    archived_on = datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)
    header = f"# Channel archive for #{channel.name} ({channel.id}), archived on {archived_on} UTC by {archived_by}"
    return header + "\n\n" + "\n\n".join(entries) + "\n"


class ChannelArchiverPlugin(ZeppelinPlugin):
    plugin_name = "channel_archiver"
    info = PluginInfo(pretty_name="Channel archiver")
    show_in_docs = False

    @commands.slash_command(name="archive_channel", description="Archive the messages of a channel into a text file")
    @commands.check(is_owner_pre_filter)
    async def archive_channel(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to archive", required=True),  # type: ignore
        attachment_channel: Option(discord.TextChannel, "Channel to rehost attachments in", required=False, default=None),  # type: ignore
        messages: Option(int, "Number of messages to archive", min_value=1, max_value=MAX_ARCHIVED_MESSAGES, default=MAX_ARCHIVED_MESSAGES),  # type: ignore
    ) -> None:
        plugin_data = await self.resolve_plugin_data(ctx)
        if plugin_data is None:
            return

        if messages > MAX_ARCHIVED_MESSAGES:
            await send_error_message(plugin_data, ctx, f"Maximum number of messages to archive is {MAX_ARCHIVED_MESSAGES}")
            return

        await ctx.defer()
        try:
            archive = await build_channel_archive(channel, ctx.author, messages, attachment_channel)
        except discord.Forbidden:
            await send_error_message(plugin_data, ctx, f"Missing permissions to read <#{channel.id}>")
            return

        filename = f"archive-{channel.name}-{datetime.now(timezone.utc).strftime('%Y-%m-%d-%H-%M-%S')}.txt"
        logger.info("[ARCHIVER] Archived up to %d messages from #%s (%s)", messages, channel.name, channel.id)
        await ctx.respond(
            "Archived the channel:",
            file=discord.File(io.BytesIO(archive.encode("utf-8")), filename=filename),
        )
