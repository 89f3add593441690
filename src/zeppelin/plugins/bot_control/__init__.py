from zeppelin.plugins.bot_control.plugin import BotControlPlugin

__all__ = ["BotControlPlugin"]
