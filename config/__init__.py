"""Configuration module for PriceLens.

Centralized settings management using pydantic-settings: environment
variables and an optional .env file, validated at load time.
"""

from config.settings import GlobalConfig, get_config

__all__ = ["GlobalConfig", "get_config"]
