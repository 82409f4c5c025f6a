"""Configuration loading, environment overrides and Writable-change handling for services."""

__version__ = "0.1.0"

__all__ = ["configpaths", "environment", "fileload", "processor", "provider", "watcher"]