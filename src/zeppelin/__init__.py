"""Zeppelin: a plugin based Discord moderation bot."""

__version__ = "0.1.0"
