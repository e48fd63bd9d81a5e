"""Configuration management for Toolsmith."""

from .parser import (
    CONFIG_FILENAME,
    RuntimeConfig,
    ToolsmithConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "CONFIG_FILENAME",
    "RuntimeConfig",
    "ToolsmithConfig",
    "load_config",
    "find_config_file",
]
