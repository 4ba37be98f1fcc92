"""Configuration for libapp applications."""

from .loader import ConfigLoader, deep_merge
from .app_config import AppConfig

__all__ = ['ConfigLoader', 'deep_merge', 'AppConfig']
