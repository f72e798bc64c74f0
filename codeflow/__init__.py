"""Offline-first commit log and run history for a coding playground."""

__version__ = "0.1.0"
