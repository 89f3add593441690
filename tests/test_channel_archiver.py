"""Tests for the channel archiver plugin and attachment rehosting."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
import requests

from zeppelin.plugins.channel_archiver import ChannelArchiverPlugin
import zeppelin.plugins.channel_archiver.rehost_attachment as rehost_module
from zeppelin.plugins.channel_archiver.plugin import build_channel_archive, format_archived_message
from zeppelin.plugins.channel_archiver.rehost_attachment import MAX_ATTACHMENT_REHOST_SIZE, rehost_attachment
from zeppelin.util.download import DownloadedFile

from conftest import make_ctx, make_guild, make_member, make_plugin_data, make_text_channel


class FakeAuthor:
    def __init__(self, user_id, name):
        self.id = user_id
        self.name = name

    def __str__(self):
        return self.name


def make_message(content="hello", attachments=(), embeds=(), reactions=(), minute=4):
    return SimpleNamespace(
        created_at=datetime(2024, 1, 2, 3, minute, 5, tzinfo=timezone.utc),
        content=content,
        author=FakeAuthor(5, "alice"),
        attachments=list(attachments),
        embeds=list(embeds),
        reactions=list(reactions),
    )


def make_attachment(attachment_id=77, size=100, url="https://cdn.example/cat.png", filename="cat.png"):
    return SimpleNamespace(id=attachment_id, size=size, url=url, filename=filename)


def set_history(channel, messages):
    async def history(limit=None, oldest_first=None):
        for message in messages[:limit]:
            yield message

    channel.history = history


class TestFormatting:
    @pytest.mark.asyncio
    async def test_plain_message(self):
        entry = await format_archived_message(make_message(), None)
        assert entry == "[2024-01-02 03:04:05] [5] [alice]: hello"

    @pytest.mark.asyncio
    async def test_empty_content(self):
        entry = await format_archived_message(make_message(content=""), None)
        assert entry.endswith("[alice]: <no text content>")

    @pytest.mark.asyncio
    async def test_embeds_attachments_and_reactions(self):
        message = make_message(
            attachments=[make_attachment()],
            embeds=[SimpleNamespace(to_dict=lambda: {"title": "News"})],
            reactions=[SimpleNamespace(emoji="👍", count=2), SimpleNamespace(emoji="🎉", count=1)],
        )

        entry = await format_archived_message(message, None)

        assert entry.splitlines()[1:] == [
            '-- Embed: {"title": "News"}',
            "-- Attachment: https://cdn.example/cat.png",
            "-- Reactions: 👍: 2, 🎉: 1",
        ]

    @pytest.mark.asyncio
    async def test_archive_is_oldest_first(self):
        guild = make_guild()
        channel = make_text_channel(10, guild)
        # history yields newest first
        set_history(channel, [make_message("second", minute=6), make_message("first", minute=5)])

        archive = await build_channel_archive(channel, FakeAuthor(1, "owner"), 10)

        header, body = archive.split("\n\n", 1)
        assert header.startswith("# Channel archive for #general (10), archived on ")
        assert header.endswith(" UTC by owner")
        assert body.index("first") < body.index("second")


class TestRehost:
    @pytest.mark.asyncio
    async def test_too_big(self):
        target = MagicMock()
        target.send = AsyncMock()

        result = await rehost_attachment(make_attachment(size=MAX_ATTACHMENT_REHOST_SIZE + 1), target)

        assert result == "Attachment too big to rehost"
        target.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_download_failure(self, monkeypatch):
        monkeypatch.setattr(rehost_module, "download_file", AsyncMock(side_effect=requests.RequestException("boom")))

        result = await rehost_attachment(make_attachment(), MagicMock())

        assert result == "Failed to download attachment after 3 tries"

    @pytest.mark.asyncio
    async def test_rehosts_and_cleans_up(self, monkeypatch, tmp_path):
        path = tmp_path / "download"
        path.write_bytes(b"image")
        delete_fn = MagicMock()
        monkeypatch.setattr(rehost_module, "download_file", AsyncMock(return_value=DownloadedFile(path, delete_fn)))
        target = MagicMock()
        target.send = AsyncMock(return_value=SimpleNamespace(attachments=[SimpleNamespace(url="https://cdn.example/rehost.png")]))

        result = await rehost_attachment(make_attachment(), target)

        assert result == "https://cdn.example/rehost.png"
        assert target.send.await_args.args == ("Rehost of attachment 77",)
        assert target.send.await_args.kwargs["file"].filename == "cat.png"
        delete_fn.assert_called_once()

    @pytest.mark.asyncio
    async def test_upload_failure(self, monkeypatch, tmp_path):
        path = tmp_path / "download"
        path.write_bytes(b"image")
        delete_fn = MagicMock()
        monkeypatch.setattr(rehost_module, "download_file", AsyncMock(return_value=DownloadedFile(path, delete_fn)))
        target = MagicMock()
        target.send = AsyncMock(side_effect=discord.Forbidden(MagicMock(status=403), "Missing permissions"))

        result = await rehost_attachment(make_attachment(), target)

        assert result == "Failed to rehost attachment"
        delete_fn.assert_called_once()

    @pytest.mark.asyncio
    async def test_archive_uses_rehosted_url(self, monkeypatch):
        monkeypatch.setattr(
            "zeppelin.plugins.channel_archiver.plugin.rehost_attachment",
            AsyncMock(return_value="https://cdn.example/rehost.png"),
        )

        entry = await format_archived_message(make_message(attachments=[make_attachment()]), MagicMock())

        assert entry.endswith("-- Attachment: https://cdn.example/rehost.png")


class TestArchiveCommand:
    @pytest.fixture
    def guild(self):
        return make_guild()

    @pytest.fixture
    def cog(self, guild):
        plugin_data = make_plugin_data(None, guild, {})
        manager = MagicMock()
        manager.get_plugin_data.return_value = plugin_data
        return ChannelArchiverPlugin(MagicMock(), manager)

    @pytest.mark.asyncio
    async def test_archive_responds_with_file(self, cog, guild):
        channel = make_text_channel(10, guild)
        set_history(channel, [make_message()])
        ctx = make_ctx(make_member(1, guild), guild, channel)

        await cog.archive_channel.callback(cog, ctx, channel, None, 100)

        ctx.defer.assert_awaited_once()
        assert ctx.respond.await_args.args == ("Archived the channel:",)
        filename = ctx.respond.await_args.kwargs["file"].filename
        assert filename.startswith("archive-general-")
        assert filename.endswith(".txt")

    @pytest.mark.asyncio
    async def test_archive_without_read_permission(self, cog, guild):
        channel = make_text_channel(10, guild)

        async def history(limit=None, oldest_first=None):
            raise discord.Forbidden(MagicMock(status=403), "Missing access")
            yield  # pragma: no cover

        channel.history = history
        ctx = make_ctx(make_member(1, guild), guild, channel)

        await cog.archive_channel.callback(cog, ctx, channel, None, 100)

        ctx.respond.assert_awaited_once_with("⚠ Missing permissions to read <#10>")
