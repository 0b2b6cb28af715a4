"""
Config Module — Environment-driven settings.
"""

from .settings import ScalerSettings

__all__ = ["ScalerSettings"]
