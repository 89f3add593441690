from zeppelin.plugins.automod.plugin import AutomodPlugin

__all__ = ["AutomodPlugin"]
