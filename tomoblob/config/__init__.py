"""
Configuration management
"""

from .defaults import DEFAULT_CONFIG
from .manager import ConfigManager

__all__ = ["DEFAULT_CONFIG", "ConfigManager"]
