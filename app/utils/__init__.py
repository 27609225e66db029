"""Shared helpers: time handling and the in-process event bus."""
