"""
Plugin host for Zeppelin.

- **plugin.py**: ``ZeppelinPlugin`` (base cog) and ``PluginData`` (per-guild plugin instance).
- **config_manager.py**: config merging and override criteria evaluation.
- **levels.py**: member permission levels and permission lookups.
- **plugin_manager.py**: loading, unloading and reloading plugins per guild.
- **loops.py**: periodic background tasks owned by a plugin instance.
"""
