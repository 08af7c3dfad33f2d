"""
PiRSS Configuration
===================
"""

from .settings import PiRSSSettings, get_settings, load_settings

__all__ = ["PiRSSSettings", "get_settings", "load_settings"]
