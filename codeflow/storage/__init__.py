"""On-device storage tier."""

from .local_tier import LocalTier

__all__ = ["LocalTier"]
