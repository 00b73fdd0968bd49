"""Configuration module - single source of truth for settings."""

from .settings import (
    Settings,
    ResearchThresholds,
    settings,
)

# Backward-compatible alias
config = settings

__all__ = [
    "Settings",
    "ResearchThresholds",
    "settings",
    "config",
]
