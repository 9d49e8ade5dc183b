"""
Utility modules for GeoEnrich.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
"""

__version__ = '1.0.0'
