"""
mcbridge validation module.

This module provides configuration loading and schema enforcement.
"""

from mcbridge.validation.config import BridgeConfig, Config, ConfigError

__all__ = ["BridgeConfig", "Config", "ConfigError"]
