"""
Configuration management for the geyser_ingest agent.

Loads settings from CLI arguments, environment variables and an optional
.env file, validates them, and exposes one frozen Settings object.
"""

from geyser_ingest.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
