"""Configuration for the settlement resolver and trade processor."""

from .chain_config import TrackedAsset, TRACKED_ASSETS
from .settings import ProcessorSettings

__all__ = [
    'TrackedAsset',
    'TRACKED_ASSETS',
    'ProcessorSettings',
]
