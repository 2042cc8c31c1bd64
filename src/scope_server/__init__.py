"""Control-plane protocol engine for a remote oscilloscope server."""

from . import config, dispatcher, parser, server, terminal

__all__ = [
    "config",
    "dispatcher",
    "parser",
    "server",
    "terminal",
]
