from .settings import AssetSettings, get_settings, reset_settings_cache

__all__ = [
    "AssetSettings",
    "get_settings",
    "reset_settings_cache",
]
