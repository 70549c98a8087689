"""Configuration, persistence and error types."""
