"""Reference remote server for codeflow clients."""

from .app import create_app
from .database import RemoteDatabase

__all__ = ["RemoteDatabase", "create_app"]
