"""
Base classes for Zeppelin plugins.

A plugin is a py-cord cog. The cog itself is shared by every guild; the
per-guild part (decoded config, runtime state) lives in a :class:`PluginData`
that the :class:`~zeppelin.core.plugin_manager.PluginManager` creates when
the plugin is loaded for a guild. Commands and listeners look up the
PluginData of the guild they run in and do nothing when the plugin is not
loaded there.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Dict, List, Optional

import discord
from discord.ext import commands

from zeppelin.configuration.app_configuration import GuildConfig, YamlConfigFile
from zeppelin.core.config_manager import PluginConfigManager
from zeppelin.util.logger import get_logger

if TYPE_CHECKING:
    from zeppelin.core.plugin_manager import PluginManager

logger = get_logger("plugin")

PluginOptions = Dict[str, Any]
ConfigPreprocessor = Callable[[PluginOptions], Awaitable[PluginOptions]]


@dataclass(frozen=True)
class PluginInfo:
    """Documentation metadata for a plugin."""
    pretty_name: str
    description: str = ""


class PluginData:
    """
    Everything a plugin instance knows about the guild it is loaded in.

    Attributes:
        plugin (ZeppelinPlugin): The cog this data belongs to.
        client (discord.Bot): The bot.
        guild (discord.Guild | None): The guild, or None for global plugins.
        config (PluginConfigManager): Decoded config and overrides.
        guild_config (YamlConfigFile): The raw guild (or global) config file.
        manager (PluginManager): The manager that loaded the plugin.
        state (SimpleNamespace): Free-form runtime state owned by the plugin.
        loaded (bool): True between a successful load and the unload.
    """

    def __init__(
        self,
        plugin: "ZeppelinPlugin",
        client: discord.Bot,
        guild: discord.Guild | None,
        config: PluginConfigManager,
        guild_config: YamlConfigFile,
        manager: "PluginManager",
    ) -> None:
        self.plugin = plugin
        self.client = client
        self.guild = guild
        self.config = config
        self.guild_config = guild_config
        self.manager = manager
        self.state = SimpleNamespace()
        self.loaded = False

    @property
    def guild_id(self) -> int | None:
        return self.guild.id if self.guild is not None else None

    def get_manager(self) -> "PluginManager":
        return self.manager

    def get_plugin(self, plugin_cls: type["ZeppelinPlugin"]) -> SimpleNamespace:
        """
        Return the public functions of another plugin loaded in the same guild.

        Raises:
            LookupError: If that plugin is not loaded here.
        """
        if plugin_cls.is_global:
            other = self.manager.get_global_plugin_data(plugin_cls.plugin_name)
        else:
            other = self.manager.get_plugin_data(self.guild_id, plugin_cls.plugin_name)
        if other is None:
            raise LookupError(f"Plugin '{plugin_cls.plugin_name}' is not loaded for guild {self.guild_id}")

        return SimpleNamespace(**{name: mapper(other) for name, mapper in plugin_cls.public_functions.items()})

    def __repr__(self) -> str:
        return f"PluginData({self.plugin.plugin_name!r}, guild={self.guild_id})"


class ZeppelinPlugin(commands.Cog):
    """Base cog for all Zeppelin plugins.

    Subclasses set the class attributes below and may override
    :meth:`on_load` and :meth:`on_unload` (plain or async functions).
    """

    plugin_name: ClassVar[str] = ""
    info: ClassVar[Optional[PluginInfo]] = None
    show_in_docs: ClassVar[bool] = True
    config_schema: ClassVar[Optional[Dict[str, Any]]] = None
    default_options: ClassVar[PluginOptions] = {"config": {}, "overrides": []}
    dependencies: ClassVar[List[type["ZeppelinPlugin"]]] = []
    is_global: ClassVar[bool] = False
    config_preprocessor: ClassVar[Optional[ConfigPreprocessor]] = None
    # name -> callable(plugin_data) returning the bound function, see map_to_public_fn
    public_functions: ClassVar[Dict[str, Callable[[PluginData], Callable[..., Any]]]] = {}

    def __init__(self, bot: discord.Bot, manager: "PluginManager") -> None:
        self.bot = bot
        self.manager = manager
        logger.info("[PLUGIN] %s cog registered", self.plugin_name)

    # --------------------------
    # Lifecycle hooks
    # --------------------------
    def on_load(self, plugin_data: PluginData) -> Any:
        """Called after the plugin's options are validated for a guild."""

    def on_unload(self, plugin_data: PluginData) -> Any:
        """Called before the plugin is removed from a guild."""

    # --------------------------
    # Helpers for commands and listeners
    # --------------------------
    def get_plugin_data(self, guild_id: int | None) -> PluginData | None:
        if self.is_global:
            return self.manager.get_global_plugin_data(self.plugin_name)
        if guild_id is None:
            return None
        return self.manager.get_plugin_data(guild_id, self.plugin_name)

    async def resolve_plugin_data(self, ctx: discord.ApplicationContext) -> PluginData | None:
        """Return the PluginData for the command's guild, telling the invoker if there is none."""
        plugin_data = self.get_plugin_data(ctx.guild.id if ctx.guild else None)
        if plugin_data is None:
            await ctx.respond("This command is not available here.", ephemeral=True)
        return plugin_data


def guild_config_of(plugin_data: PluginData) -> GuildConfig | None:
    """Return the guild config of ``plugin_data``, or None for global plugins."""
    config = plugin_data.guild_config
    return config if isinstance(config, GuildConfig) else None
