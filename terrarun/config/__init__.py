"""
Configuration management for terrarun.

This module handles persistent settings, defaults, and the immutable
RunnerConfig handed to the execution components.
"""

from .settings import Settings
from .defaults import DEFAULT_SETTINGS
from .runner_config import RunnerConfig

__all__ = ["Settings", "DEFAULT_SETTINGS", "RunnerConfig"]
