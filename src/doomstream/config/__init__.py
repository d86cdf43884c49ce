"""Configuration management for doomstream.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides, including the legacy
``DOOM_*`` variables understood by earlier deployments.
"""

from doomstream.config.settings import Settings, load_settings

__all__ = ["Settings", "load_settings"]
