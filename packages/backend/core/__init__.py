"""Core configuration, model catalog, and interfaces.

This module provides the foundation shared by services and adapters:
- Settings: Application configuration
- Model catalog: SenseVoice variants and their download sources
- Interfaces: Contracts for the settings store and inference worker
"""

from .config import Settings, settings

__all__ = [
    # Configuration
    "Settings",
    "settings",
]
