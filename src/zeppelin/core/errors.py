"""Exceptions raised by the plugin host."""


class ConfigValidationError(Exception):
    """Plugin options failed validation. The message lists every problem, one per line."""


class PluginLoadError(Exception):
    """A plugin could not be loaded for a guild (or globally)."""

    def __init__(self, plugin_name: str, message: str, guild_id: int | None = None) -> None:
        self.plugin_name = plugin_name
        self.guild_id = guild_id
        where = f"guild {guild_id}" if guild_id is not None else "global"
        super().__init__(f"Failed to load plugin '{plugin_name}' ({where}): {message}")
