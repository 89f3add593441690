from zeppelin.plugins.locate_user.plugin import LocateUserPlugin

__all__ = ["LocateUserPlugin"]
