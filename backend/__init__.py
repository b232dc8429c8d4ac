"""
Backend package: Flask web layer around the OTP core.
"""

from .app import create_app

__all__ = ['create_app']
