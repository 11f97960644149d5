"""Configuration package."""

from life_kernel.config.settings import (
    KernelSettings,
    get_settings,
)

__all__ = [
    "KernelSettings",
    "get_settings",
]
