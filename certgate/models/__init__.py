"""
Models package for the certificate authentication gateway.
"""

from .config import Config, ConfigValidationError, ConfigValidationResult

__all__ = [
    'Config',
    'ConfigValidationError',
    'ConfigValidationResult'
]
