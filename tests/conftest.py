"""
Shared fixtures for GeoEnrich tests.

The engine never touches the network in tests: FakeTransport stands in for
the fetch_json collaborator and answers from per-leg scripts.
"""

import copy
import json

import pytest

from core.models import GeometryKind, ServiceDescriptor
from core.query_builder import WITHIN, GEOMETRY_POLYGON

FAST_SETTINGS = {'page_delay_seconds': 0}

SQUARE = [[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]


def classify(params):
    """Name the leg a request belongs to from its parameters."""
    if params['geometryType'] == GEOMETRY_POLYGON:
        return 'circle'
    if params['spatialRel'] == WITHIN:
        return 'within'
    if 'distance' in params:
        return 'proximity'
    return 'containment'


class FakeTransport:
    """
    fetch_json collaborator answering from scripted responses.

    scripts maps a leg name ('containment', 'proximity', 'circle', 'within')
    to a list of responses served in order; the last response repeats. A
    response that is an Exception instance is raised instead of returned.
    """

    def __init__(self, **scripts):
        self.scripts = {leg: list(responses) for leg, responses in scripts.items()}
        self.calls = []

    def calls_for(self, leg):
        return [params for called_leg, _, params in self.calls if called_leg == leg]

    async def fetch_json(self, url, params):
        leg = classify(params)
        self.calls.append((leg, url, dict(params)))
        responses = self.scripts.get(leg) or [{'features': []}]
        index = min(len(self.calls_for(leg)) - 1, len(responses) - 1)
        response = responses[index]
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)


def polygon_feature(object_id, rings, **attributes):
    return {
        'attributes': {'OBJECTID': object_id, **attributes},
        'geometry': {'rings': rings, 'spatialReference': {'wkid': 4326}}
    }


def point_feature(object_id, x, y, **attributes):
    return {'attributes': {'OBJECTID': object_id, **attributes}, 'geometry': {'x': x, 'y': y}}


def line_feature(object_id, paths, **attributes):
    return {'attributes': {'OBJECTID': object_id, **attributes}, 'geometry': {'paths': paths}}


def geometry_param(params):
    return json.loads(params['geometry'])


@pytest.fixture
def polygon_descriptor():
    return ServiceDescriptor(
        base_url='https://example.test/arcgis/rest/services/Parks/FeatureServer',
        layer_id=0,
        geometry_kind=GeometryKind.POLYGON,
        max_radius_miles=1000.0,
        name='Test Parks',
        field_candidates={'name': ('UNITNAME', 'unitName')}
    )


@pytest.fixture
def point_descriptor():
    return ServiceDescriptor(
        base_url='https://example.test/arcgis/rest/services/Wells/MapServer',
        layer_id=3,
        geometry_kind=GeometryKind.POINT,
        max_radius_miles=25.0,
        name='Test Wells'
    )


@pytest.fixture
def line_descriptor():
    return ServiceDescriptor(
        base_url='https://example.test/arcgis/rest/services/Rail/MapServer',
        layer_id=18,
        geometry_kind=GeometryKind.POLYLINE,
        max_radius_miles=25.0,
        name='Test Rail'
    )
