from .settings import TransferSettings, get_cached_settings, load_settings, reset_settings_cache

__all__ = ["TransferSettings", "get_cached_settings", "load_settings", "reset_settings_cache"]
