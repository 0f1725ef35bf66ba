"""Configuration management."""

from ensemble.config.manager import ConfigManager
from ensemble.config.schema import EnsembleConfig

__all__ = ["ConfigManager", "EnsembleConfig"]
