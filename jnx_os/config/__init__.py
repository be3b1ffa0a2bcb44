"""Configuration."""

from jnx_os.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
