"""Every plugin the bot ships with. Guilds enable them in their config file."""

from zeppelin.plugins.automod import AutomodPlugin
from zeppelin.plugins.bot_control import BotControlPlugin
from zeppelin.plugins.channel_archiver import ChannelArchiverPlugin
from zeppelin.plugins.locate_user import LocateUserPlugin
from zeppelin.plugins.slowmode import SlowmodePlugin

ALL_PLUGINS = [
    AutomodPlugin,
    BotControlPlugin,
    ChannelArchiverPlugin,
    LocateUserPlugin,
    SlowmodePlugin,
]

__all__ = [
    "ALL_PLUGINS",
    "AutomodPlugin",
    "BotControlPlugin",
    "ChannelArchiverPlugin",
    "LocateUserPlugin",
    "SlowmodePlugin",
]
