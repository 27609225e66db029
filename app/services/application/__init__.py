"""Singleton services managed by ServiceContainer."""
