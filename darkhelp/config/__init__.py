"""
Configuration Module

Centralizes all configurable parameters.
"""

from darkhelp.config.settings import (
    settings,
    Settings,
    DetectionConfig,
    AnnotationConfig,
    StreamConfig,
)

__all__ = [
    "settings",
    "Settings",
    "DetectionConfig",
    "AnnotationConfig",
    "StreamConfig",
]
