"""HTTP access to a codeflow remote server."""

from .client import RemoteClient

__all__ = ["RemoteClient"]
