"""
Contract Comparison Engine - Application Settings.

Environment-driven configuration for the comparison pipeline.
"""

from app.config import Settings, get_settings

__all__ = [
    "get_settings",
    "Settings",
]
