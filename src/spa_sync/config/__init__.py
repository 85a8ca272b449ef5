"""Configuration module for the spa ledger sync."""

from spa_sync.config.logging import configure_logging
from spa_sync.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
