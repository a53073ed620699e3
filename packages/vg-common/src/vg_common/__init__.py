"""
vg-common: Shared library for VoxGuard.

Provides data models, configuration management, the record store and its
database backends, Redis messaging, structured logging, and the exception
hierarchy used by the compliance service.
"""

from vg_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
