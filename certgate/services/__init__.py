"""
Services package for the certificate authentication gateway.
"""

from .config_service import ConfigService
from .logging_service import LoggingService

__all__ = [
    'ConfigService',
    'LoggingService'
]
