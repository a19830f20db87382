"""news_sync - multi-device reading-state synchronization."""

__version__ = "0.1.0"
