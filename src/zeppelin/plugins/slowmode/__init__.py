from zeppelin.plugins.slowmode.plugin import SlowmodePlugin

__all__ = ["SlowmodePlugin"]
