"""
Configuration package. Exposes environment settings and JSON rule loading.
"""
from config.settings import Settings, load_settings
from config.rules import load_json

__all__ = [
    "Settings",
    "load_settings",
    "load_json",
]
