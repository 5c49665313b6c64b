"""
FastAPI dependency utilities for injecting configuration.
"""

from functools import lru_cache

from fastapi import Depends

from canva_bridge.core.config import AppSettings, CanvaSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_canva_settings(
    settings: AppSettings = Depends(get_app_settings),
) -> CanvaSettings:
    """The Canva group alone; overriding ``get_app_settings`` flows through here."""
    return settings.canva


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings", "get_canva_settings"]
