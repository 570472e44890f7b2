"""Configuration management for Wattly."""

from wattly.config.schema import AppConfig
from wattly.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
