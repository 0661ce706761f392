"""
mTLS client certificate authentication gateway.
"""

__version__ = "1.0.0"
