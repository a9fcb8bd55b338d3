"""Logging helpers shared by every drivesync package."""
