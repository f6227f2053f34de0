"""
trae-agent validation module.

This module provides configuration validation and schema enforcement.
"""

from traeagent.validation.config import Config, ConfigError, TraeConfig

__all__ = ["Config", "ConfigError", "TraeConfig"]
