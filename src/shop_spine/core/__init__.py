"""Core module - settings, errors, time utilities."""

from shop_spine.core.settings import Settings, get_settings
from shop_spine.core.time import ago, utc_now, utc_now_naive

__all__ = [
    "Settings",
    "get_settings",
    "utc_now",
    "utc_now_naive",
    "ago",
]
