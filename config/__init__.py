"""Configuration module for loading and managing application settings"""
from typing import Dict, Any, Optional
from .lib.load_settings_conf import load_settings_conf, parse_settings, SettingsError
import os

__all__ = ['get_settings', 'load_config', 'parse_settings', 'SettingsError']

# Directory searched for settings.conf unless overridden
SETTINGS_DIR_ENV = 'MARKET_SETTINGS_DIR'

_settings: Optional[Dict[str, Any]] = None

def load_config(settings_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file.

    Args:
        settings_path: Optional directory holding settings.conf. If not provided,
                      MARKET_SETTINGS_DIR or the current directory is used.

    Returns:
        Validated settings dictionary
    """
    global _settings

    path = settings_path or os.environ.get(SETTINGS_DIR_ENV, '.')
    try:
        _settings = load_settings_conf(path)
    except SettingsError as e:
        # Re-raise the error but provide more context
        raise SettingsError(
            f"Configuration Error\n"
            "=================\n\n"
            f"{str(e)}\n\n"
            "Please ensure settings.conf is properly configured.\n"
            "See examples/settings.conf.example for the required layout."
        ) from e
    return _settings

def get_settings() -> Dict[str, Any]:
    """Return the loaded settings, loading them on first use."""
    if _settings is None:
        return load_config()
    return _settings
