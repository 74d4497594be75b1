"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from dormside.core.config import get_settings, Settings, EnvironmentMode, StorageBackend
from dormside.core.errors import StorefrontError

__all__ = ["get_settings", "Settings", "EnvironmentMode", "StorageBackend", "StorefrontError"]
