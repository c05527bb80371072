"""Configuration package."""

from billetera.config.settings import (
    AppSettings,
    FirebaseSettings,
    Settings,
    StoreSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirebaseSettings",
    "Settings",
    "StoreSettings",
    "get_settings",
    "validate_all_settings",
]
