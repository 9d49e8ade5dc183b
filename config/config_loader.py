"""
Configuration loading for GeoEnrich.

This module handles loading and validation of the service configuration JSON
file: one entry per remote dataset (URL, layer id, geometry kind, radius cap,
field-key candidates) plus engine settings.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_CONFIG_PATH: Bundled services_config.json
    DEFAULT_QUERY_SETTINGS: Engine defaults used when settings are missing

Functions:
    load_config: Load and validate service configuration from JSON
    load_query_settings: Merge engine settings with defaults
    build_service_descriptor: Build a ServiceDescriptor from one config entry
    load_service_descriptors: Build descriptors for all enabled services
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from core.models import GeometryKind, ServiceDescriptor

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
DEFAULT_CONFIG_PATH = CONFIG_DIR / 'services_config.json'

DEFAULT_QUERY_SETTINGS = {
    'batch_size': 2000,
    'max_records': 100000,
    'page_delay_seconds': 0.1,
    'request_timeout': 30,
    'circle_vertices': 64,
    'default_radius_miles': 5.0
}

REQUIRED_SERVICE_KEYS = ('name', 'url', 'layer_id', 'geometry_type', 'max_radius_miles')


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """
    Load service configuration from JSON file.

    Reads services_config.json (or the given path) and validates basic structure.

    Returns:
    --------
    Dict
        Configuration dictionary with 'services' and 'settings' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if 'services' not in config:
        raise KeyError("Configuration missing required 'services' key")
    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    return config


def load_query_settings(config: Dict = None) -> Dict:
    """
    Load engine settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with query settings

    Defaults:
        - batch_size: 2000 (records requested per page)
        - max_records: 100000 (pagination safety cap)
        - page_delay_seconds: 0.1
        - request_timeout: 30
        - circle_vertices: 64
        - default_radius_miles: 5.0

    Note:
        Values in the config's 'settings' section override the defaults.
    """
    if config is None:
        config = load_config()

    return {**DEFAULT_QUERY_SETTINGS, **config.get('settings', {})}


def build_service_descriptor(entry: Dict) -> ServiceDescriptor:
    """
    Build a ServiceDescriptor from one 'services' entry.

    Raises:
        KeyError: If a required key is missing
        ValueError: If the geometry type or radius cap is invalid
    """
    missing = [key for key in REQUIRED_SERVICE_KEYS if key not in entry]
    if missing:
        raise KeyError(f"Service '{entry.get('name', '?')}' missing keys: {', '.join(missing)}")

    max_radius = float(entry['max_radius_miles'])
    if max_radius <= 0:
        raise ValueError(f"Service '{entry['name']}' max_radius_miles must be positive, got {max_radius}")

    fields = {
        canonical: tuple(candidates)
        for canonical, candidates in entry.get('fields', {}).items()
    }

    return ServiceDescriptor(
        base_url=entry['url'],
        layer_id=int(entry['layer_id']),
        geometry_kind=GeometryKind.parse(entry['geometry_type']),
        max_radius_miles=max_radius,
        supports_contains_operator=bool(entry.get('supports_contains', False)),
        name=entry['name'],
        field_candidates=fields,
        enabled=bool(entry.get('enabled', True))
    )


def load_service_descriptors(config: Dict = None) -> List[ServiceDescriptor]:
    """Descriptors for every enabled service in the configuration, in file order."""
    if config is None:
        config = load_config()

    descriptors = [build_service_descriptor(entry) for entry in config['services']]
    return [d for d in descriptors if d.enabled]
