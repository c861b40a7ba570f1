"""Remote backend integration."""

from .client import RemoteClient

__all__ = ["RemoteClient"]
