"""
Plugin manager: loads, unloads and reloads plugins per guild.

The manager is itself a cog so it can react to the gateway events that
drive guild loading (``on_ready``, ``on_guild_join``, ``on_guild_remove``).
Plugin cogs are registered once at startup; what changes at runtime is the
set of :class:`PluginData` objects, one per (guild, plugin) pair.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Dict, Iterable, List

import discord
from discord.ext import commands

from zeppelin.configuration.app_configuration import ConfigStore, YamlConfigFile
from zeppelin.core.config_manager import PluginConfigManager, merge_config
from zeppelin.core.errors import ConfigValidationError, PluginLoadError
from zeppelin.core.levels import get_member_level
from zeppelin.core.plugin import PluginData, PluginOptions, ZeppelinPlugin
from zeppelin.util.logger import get_logger

logger = get_logger("plugin_manager")


async def call_hook(hook: Any, plugin_data: PluginData) -> None:
    """Call a lifecycle hook that may be a plain function or a coroutine function."""
    result = hook(plugin_data)
    if inspect.isawaitable(result):
        await result


def get_merged_plugin_options(default_options: PluginOptions, user_options: PluginOptions) -> PluginOptions:
    """
    Merge user-supplied plugin options over the plugin's defaults.

    ``config`` is deep-merged. Overrides are the default overrides followed by
    the user's, unless the user sets ``replaceDefaultOverrides``.
    """
    merged = dict(user_options)
    merged["config"] = merge_config(default_options.get("config") or {}, user_options.get("config") or {})

    user_overrides = user_options.get("overrides") or []
    if user_options.get("replaceDefaultOverrides"):
        merged["overrides"] = list(user_overrides)
    else:
        merged["overrides"] = list(default_options.get("overrides") or []) + list(user_overrides)

    return merged


class PluginManager(commands.Cog):
    """Owns every plugin cog and the per-guild plugin data."""

    def __init__(self, bot: discord.Bot, config_store: ConfigStore, plugin_classes: Iterable[type[ZeppelinPlugin]]) -> None:
        self.bot = bot
        self.config_store = config_store
        self.plugin_classes: Dict[str, type[ZeppelinPlugin]] = {cls.plugin_name: cls for cls in plugin_classes}
        self.plugins: Dict[str, ZeppelinPlugin] = {}

        self.guild_plugins: Dict[int, Dict[str, PluginData]] = {}
        self.global_plugins: Dict[str, PluginData] = {}
        self._guild_locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    # --------------------------
    # Registration
    # --------------------------
    def register_plugins(self) -> None:
        """Instantiate every plugin cog and add it, and the manager, to the bot."""
        for name, plugin_cls in self.plugin_classes.items():
            plugin = plugin_cls(self.bot, self)
            self.plugins[name] = plugin
            self.bot.add_cog(plugin)

        self.bot.add_cog(self)
        logger.info("[PLUGINS] Registered %d plugins", len(self.plugins))

    # --------------------------
    # Lookups
    # --------------------------
    def get_plugin_data(self, guild_id: int | None, plugin_name: str) -> PluginData | None:
        if guild_id is None:
            return None
        return self.guild_plugins.get(guild_id, {}).get(plugin_name)

    def get_global_plugin_data(self, plugin_name: str) -> PluginData | None:
        return self.global_plugins.get(plugin_name)

    def is_guild_loaded(self, guild_id: int) -> bool:
        return guild_id in self.guild_plugins

    # --------------------------
    # Option handling
    # --------------------------
    async def build_config_manager(
        self, plugin_cls: type[ZeppelinPlugin], user_options: Any, plugin_data_ref: List[PluginData]
    ) -> PluginConfigManager:
        """Validate and decode a plugin's options into a PluginConfigManager."""
        from zeppelin.plugin_utils import get_plugin_config_preprocessor

        if user_options is None:
            user_options = {}
        if not isinstance(user_options, dict):
            raise ConfigValidationError(f"Options for plugin '{plugin_cls.plugin_name}' must be a mapping")

        merged = get_merged_plugin_options(plugin_cls.default_options, user_options)
        preprocess = get_plugin_config_preprocessor(plugin_cls, plugin_cls.config_preprocessor)
        processed = await preprocess(merged)

        def level_resolver(member: discord.Member) -> int:
            return get_member_level(plugin_data_ref[0], member)

        return PluginConfigManager(processed["config"], processed["overrides"], level_resolver)

    async def _load_plugin(
        self,
        plugin_cls: type[ZeppelinPlugin],
        user_options: Any,
        guild: discord.Guild | None,
        guild_config: YamlConfigFile,
    ) -> PluginData:
        guild_id = guild.id if guild is not None else None
        plugin_data_ref: List[PluginData] = []

        try:
            config = await self.build_config_manager(plugin_cls, user_options, plugin_data_ref)
        except ConfigValidationError as exc:
            raise PluginLoadError(plugin_cls.plugin_name, f"invalid configuration:\n{exc}", guild_id) from exc

        plugin = self.plugins[plugin_cls.plugin_name]
        plugin_data = PluginData(plugin, self.bot, guild, config, guild_config, self)
        plugin_data_ref.append(plugin_data)

        try:
            await call_hook(plugin.on_load, plugin_data)
        except Exception as exc:
            raise PluginLoadError(plugin_cls.plugin_name, f"on_load failed: {exc}", guild_id) from exc

        plugin_data.loaded = True
        logger.debug("[PLUGINS] Loaded %s", plugin_data)
        return plugin_data

    async def _unload_plugin(self, plugin_data: PluginData) -> None:
        plugin_data.loaded = False
        try:
            await call_hook(plugin_data.plugin.on_unload, plugin_data)
        except Exception:
            logger.exception("[PLUGINS] Error while unloading %s", plugin_data)

    def resolve_load_order(self, plugin_names: Iterable[str]) -> List[type[ZeppelinPlugin]]:
        """Return the plugin classes to load, dependencies before dependents, unknown names skipped."""
        order: List[type[ZeppelinPlugin]] = []
        seen: set[str] = set()

        def visit(plugin_cls: type[ZeppelinPlugin]) -> None:
            if plugin_cls.plugin_name in seen:
                return
            seen.add(plugin_cls.plugin_name)
            for dependency in plugin_cls.dependencies:
                visit(dependency)
            order.append(plugin_cls)

        for name in plugin_names:
            plugin_cls = self.plugin_classes.get(name)
            if plugin_cls is None:
                logger.warning("[PLUGINS] Unknown plugin '%s' in config, skipping", name)
                continue
            visit(plugin_cls)

        return order

    # --------------------------
    # Guild plugins
    # --------------------------
    async def load_guild(self, guild: discord.Guild) -> bool:
        """
        Load every plugin enabled in the guild's config.

        On failure the plugins already loaded for the guild are unloaded
        again and False is returned; the error is logged.
        """
        async with self._guild_locks[guild.id]:
            if guild.id in self.guild_plugins:
                await self._unload_guild_unlocked(guild.id)

            guild_config = self.config_store.get_guild_config(guild.id)
            plugin_options = guild_config.plugins
            enabled_names = [
                name for name, options in plugin_options.items()
                if not (isinstance(options, dict) and options.get("enabled") is False)
            ]

            loaded: Dict[str, PluginData] = {}
            try:
                for plugin_cls in self.resolve_load_order(enabled_names):
                    if plugin_cls.is_global:
                        logger.warning("[PLUGINS] Global plugin '%s' listed in guild %s config, skipping", plugin_cls.plugin_name, guild.id)
                        continue
                    options = plugin_options.get(plugin_cls.plugin_name)
                    loaded[plugin_cls.plugin_name] = await self._load_plugin(plugin_cls, options, guild, guild_config)
                    # Visible to later plugins' on_load (dependencies)
                    self.guild_plugins[guild.id] = loaded
            except PluginLoadError as exc:
                logger.error("[PLUGINS] %s", exc)
                for plugin_data in reversed(list(loaded.values())):
                    await self._unload_plugin(plugin_data)
                self.guild_plugins.pop(guild.id, None)
                return False

            self.guild_plugins[guild.id] = loaded
            logger.info("[PLUGINS] Loaded %d plugins for guild %s (%s)", len(loaded), guild.name, guild.id)
            return True

    async def _unload_guild_unlocked(self, guild_id: int) -> None:
        loaded = self.guild_plugins.pop(guild_id, {})
        for plugin_data in reversed(list(loaded.values())):
            await self._unload_plugin(plugin_data)
        if loaded:
            logger.info("[PLUGINS] Unloaded %d plugins for guild %s", len(loaded), guild_id)

    async def unload_guild(self, guild_id: int) -> None:
        async with self._guild_locks[guild_id]:
            await self._unload_guild_unlocked(guild_id)

    async def reload_guild(self, guild: discord.Guild) -> bool:
        return await self.load_guild(guild)

    async def load_all_guilds(self) -> None:
        for guild in self.bot.guilds:
            if not self.is_guild_loaded(guild.id):
                await self.load_guild(guild)

    # --------------------------
    # Global plugins
    # --------------------------
    async def load_global_plugins(self) -> bool:
        global_config = self.config_store.global_config
        plugin_options = global_config.plugins
        enabled_names = [
            name for name, options in plugin_options.items()
            if not (isinstance(options, dict) and options.get("enabled") is False)
        ]

        try:
            for plugin_cls in self.resolve_load_order(enabled_names):
                if not plugin_cls.is_global:
                    logger.warning("[PLUGINS] Guild plugin '%s' listed in global config, skipping", plugin_cls.plugin_name)
                    continue
                self.global_plugins[plugin_cls.plugin_name] = await self._load_plugin(
                    plugin_cls, plugin_options.get(plugin_cls.plugin_name), None, global_config
                )
        except PluginLoadError as exc:
            logger.error("[PLUGINS] %s", exc)
            await self.unload_global_plugins()
            return False

        logger.info("[PLUGINS] Loaded %d global plugins", len(self.global_plugins))
        return True

    async def unload_global_plugins(self) -> None:
        loaded, self.global_plugins = self.global_plugins, {}
        for plugin_data in reversed(list(loaded.values())):
            await self._unload_plugin(plugin_data)

    async def reload_all_global_plugins(self) -> bool:
        """Unload global plugins, re-read the global config and load them again."""
        await self.unload_global_plugins()
        self.config_store.reload_global_config()
        return await self.load_global_plugins()

    async def shutdown(self) -> None:
        for guild_id in list(self.guild_plugins):
            await self.unload_guild(guild_id)
        await self.unload_global_plugins()
        logger.info("[PLUGINS] Plugin manager shutdown complete")

    # --------------------------
    # Gateway events
    # --------------------------
    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        if self.bot.user:
            logger.info("Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)
        await self.load_all_guilds()

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.info("[PLUGINS] Joined guild %s (%s)", guild.name, guild.id)
        await self.load_guild(guild)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info("[PLUGINS] Left guild %s (%s)", guild.name, guild.id)
        await self.unload_guild(guild.id)

    @commands.Cog.listener(name="on_application_command_error")
    async def on_application_command_error(self, ctx: discord.ApplicationContext, error: discord.DiscordException) -> None:
        if isinstance(error, commands.CheckFailure):
            await ctx.respond("You are not allowed to use this command.", ephemeral=True)
            return

        logger.error("[COMMANDS] Error in /%s: %s", ctx.command.qualified_name if ctx.command else "?", error, exc_info=error)
        try:
            await ctx.respond("An error occurred while processing the command.", ephemeral=True)
        except discord.HTTPException:
            logger.error("[COMMANDS] Failed to send error response to user.")
