"""
Backend package for the OTP service using Flask.
Wraps the core account service in a JSON API.
"""

from .app import create_app

__all__ = ['create_app']
