"""Differential synchronization between Google Drive and a local directory tree."""

__version__ = "1.0.0"
