"""
Configuration package for GeoEnrich.

This package contains configuration loading and validation.

Modules:
    config_loader: Load and validate service configuration from JSON
"""

__version__ = '1.0.0'
