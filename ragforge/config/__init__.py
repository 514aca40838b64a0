"""
Configuration System

Manages configuration for RagForge with a layered approach.

Configuration Priority (highest to lowest):
    1. Programmatic (passed to RFConfig())
    2. Environment variables (RAGFORGE_* prefix)
    3. Config file (RFConfig.from_file)
    4. Built-in defaults

Modules:
    settings: RFConfig class
"""

from ragforge.config.settings import RFConfig

__all__ = ["RFConfig"]
