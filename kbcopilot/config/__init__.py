"""Configuration module - exports Settings and load_config."""

from kbcopilot.config.loader import load_config
from kbcopilot.config.settings import Settings

__all__ = ["Settings", "load_config"]
