"""Configuration for credbind.

Example:
    >>> from credbind.config import CredbindSettings
    >>> settings = CredbindSettings.from_yaml("credbind.yaml")
    >>> store = settings.create_store()
"""

from credbind.config.settings import CredbindSettings, MaskingConfig, StoreConfig, UsageConfig

__all__ = ["CredbindSettings", "MaskingConfig", "StoreConfig", "UsageConfig"]
