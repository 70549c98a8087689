"""Integration synchronization and webhook ingestion engine."""

__version__ = "1.0.0"
