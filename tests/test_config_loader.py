"""Tests for loading the services configuration."""

import json

import pytest

from config.config_loader import (
    DEFAULT_QUERY_SETTINGS,
    build_service_descriptor,
    load_config,
    load_query_settings,
    load_service_descriptors,
)
from core.models import GeometryKind

ENTRY = {
    'name': 'Rail Lines',
    'url': 'https://example.test/arcgis/rest/services/Rail/MapServer',
    'layer_id': '18',
    'geometry_type': 'esriGeometryPolyline',
    'max_radius_miles': 10,
    'fields': {'name': ['RAIL_NAME', 'NAME']}
}


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'services.json'
    path.write_text(json.dumps({
        'settings': {'batch_size': 500},
        'services': [ENTRY, {**ENTRY, 'name': 'Old Rail', 'enabled': False}]
    }))
    return path


def test_bundled_config_loads():
    config = load_config()
    descriptors = load_service_descriptors(config)

    assert descriptors
    assert len({d.layer_name for d in descriptors}) == len(descriptors)
    assert {d.geometry_kind for d in descriptors} == set(GeometryKind)
    for descriptor in descriptors:
        assert descriptor.max_radius_miles > 0
        assert descriptor.query_url.endswith(f"/{descriptor.layer_id}/query")


def test_settings_merge_with_defaults(config_file):
    settings = load_query_settings(load_config(config_file))
    assert settings['batch_size'] == 500
    assert settings['max_records'] == DEFAULT_QUERY_SETTINGS['max_records']


def test_disabled_services_are_skipped(config_file):
    descriptors = load_service_descriptors(load_config(config_file))
    assert [d.layer_name for d in descriptors] == ['Rail Lines']


def test_descriptor_from_entry():
    descriptor = build_service_descriptor(ENTRY)

    assert descriptor.layer_id == 18
    assert descriptor.geometry_kind == GeometryKind.POLYLINE
    assert descriptor.field_candidates == {'name': ('RAIL_NAME', 'NAME')}
    assert not descriptor.supports_contains_operator
    assert not descriptor.is_feature_server
    assert descriptor.effective_radius(50) == 10


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'nope.json')


def test_missing_sections(tmp_path):
    path = tmp_path / 'bad.json'
    path.write_text(json.dumps({'services': []}))
    with pytest.raises(KeyError):
        load_config(path)


def test_missing_service_keys():
    entry = dict(ENTRY)
    del entry['url']
    with pytest.raises(KeyError):
        build_service_descriptor(entry)


@pytest.mark.parametrize('changes', [{'max_radius_miles': 0}, {'geometry_type': 'esriGeometryMultipoint'}])
def test_invalid_service_values(changes):
    with pytest.raises(ValueError):
        build_service_descriptor({**ENTRY, **changes})
