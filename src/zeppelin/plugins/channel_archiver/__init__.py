from zeppelin.plugins.channel_archiver.plugin import ChannelArchiverPlugin

__all__ = ["ChannelArchiverPlugin"]
