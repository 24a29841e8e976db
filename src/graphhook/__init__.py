"""graphhook: Microsoft Graph change notification relay."""

from graphhook.version import __version__

__all__ = ["__version__"]
