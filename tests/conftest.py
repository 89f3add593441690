"""
Pytest configuration and fixtures for Zeppelin tests.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
import pytest_asyncio

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from zeppelin.configuration.app_configuration import ConfigStore  # noqa: E402
from zeppelin.core.config_manager import PluginConfigManager  # noqa: E402
from zeppelin.core.plugin import PluginData  # noqa: E402
from zeppelin.database.db_connection import db_connection  # noqa: E402


@pytest_asyncio.fixture
async def db(tmp_path):
    """Open the shared database connection on a throwaway file."""
    await db_connection.open(tmp_path / "test.db")
    yield db_connection
    await db_connection.close()


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    (directory / "guilds").mkdir(parents=True)
    return directory


def make_guild(guild_id=1000, owner_id=1):
    guild = MagicMock(spec=discord.Guild)
    guild.id = guild_id
    guild.name = "Test guild"
    guild.owner_id = owner_id
    guild.get_member = MagicMock(return_value=None)
    guild.get_channel = MagicMock(return_value=None)
    guild.fetch_member = AsyncMock(side_effect=discord.NotFound(MagicMock(status=404), "Unknown member"))
    return guild


def make_member(user_id, guild, roles=(), bot=False):
    member = MagicMock(spec=discord.Member)
    member.id = user_id
    member.guild = guild
    member.bot = bot
    member.roles = [SimpleNamespace(id=role_id) for role_id in roles]
    member.mention = f"<@{user_id}>"
    member.name = f"user{user_id}"
    member.voice = None
    member.move_to = AsyncMock()
    return member


def make_text_channel(channel_id, guild, name="general"):
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = channel_id
    channel.guild = guild
    channel.name = name
    channel.category_id = None
    channel.slowmode_delay = 0
    channel.send = AsyncMock()
    channel.edit = AsyncMock()
    channel.set_permissions = AsyncMock()
    channel.overwrites_for = MagicMock(side_effect=lambda target: discord.PermissionOverwrite())
    return channel


def make_ctx(author, guild, channel):
    ctx = MagicMock(spec=discord.ApplicationContext)
    ctx.author = author
    ctx.guild = guild
    ctx.channel = channel
    ctx.respond = AsyncMock()
    ctx.defer = AsyncMock()
    return ctx


def make_plugin_data(plugin, guild, config, overrides=None, guild_config=None, manager=None, client=None):
    """Build a PluginData with a config manager resolving levels from ``guild_config``."""
    from zeppelin.core.levels import get_member_level

    if client is None:
        client = MagicMock()
        client.user = SimpleNamespace(id=999)
    holder = []
    config_manager = PluginConfigManager(config, overrides or [], lambda member: get_member_level(holder[0], member))
    plugin_data = PluginData(plugin, client, guild, config_manager, guild_config, manager or MagicMock())
    holder.append(plugin_data)
    return plugin_data


@pytest.fixture
def config_store(config_dir):
    return ConfigStore(config_dir)
