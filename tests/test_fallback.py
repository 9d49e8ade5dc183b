"""Tests for the one-shot fallback on rejected query legs."""

import asyncio
from dataclasses import replace

import requests

from core.fallback import FALLBACK_CIRCLE, FALLBACK_WITHIN, run_leg, select_fallback
from core.layer_query import query_with_metadata
from core.models import QueryPoint
from core.query_builder import WITHIN, build_containment_spec, build_proximity_spec
from tests.conftest import FAST_SETTINGS, SQUARE, FakeTransport, geometry_param, point_feature, polygon_feature

POINT = QueryPoint(40.0, -105.0)
REJECTED = {'error': {'code': 400, 'message': 'Unable to perform query. Please check your parameters.'}}


def run(transport, spec, descriptor, leg_name, **kwargs):
    kwargs.setdefault('page_delay', 0)
    return asyncio.run(run_leg(transport, spec, POINT, descriptor, leg_name, **kwargs))


class TestSelectFallback:
    def test_contains_on_feature_server_uses_within(self, polygon_descriptor):
        descriptor = replace(polygon_descriptor, supports_contains_operator=True)
        spec, name = select_fallback(build_containment_spec(POINT, descriptor), POINT, None, descriptor)

        assert name == FALLBACK_WITHIN
        assert spec.spatial_rel == WITHIN

    def test_contains_on_map_server_has_no_fallback(self, point_descriptor):
        descriptor = replace(point_descriptor, supports_contains_operator=True)
        spec = build_containment_spec(POINT, descriptor)
        assert select_fallback(spec, POINT, None, descriptor) is None

    def test_distance_query_uses_circle(self, point_descriptor):
        spec = build_proximity_spec(POINT, 5.0, point_descriptor)
        circle_spec, name = select_fallback(spec, POINT, 5.0, point_descriptor, circle_vertices=16)

        assert name == FALLBACK_CIRCLE
        assert circle_spec.url == spec.url
        assert not circle_spec.uses_distance
        ring = geometry_param(circle_spec.params())['rings'][0]
        assert len(ring) == 17

    def test_plain_intersects_has_no_fallback(self, polygon_descriptor):
        spec = build_containment_spec(POINT, polygon_descriptor)
        assert select_fallback(spec, POINT, None, polygon_descriptor) is None


class TestRunLeg:
    def test_rejected_distance_query_retries_once_with_circle(self, point_descriptor):
        transport = FakeTransport(
            proximity=[REJECTED],
            circle=[{'features': [point_feature(7, -105.01, 40.0)]}]
        )
        spec = build_proximity_spec(POINT, 5.0, point_descriptor)

        leg = run(transport, spec, point_descriptor, 'proximity', radius_miles=5.0)

        assert len(transport.calls_for('proximity')) == 1
        assert len(transport.calls_for('circle')) == 1
        assert leg.fallback_used == FALLBACK_CIRCLE
        assert len(leg.features) == 1
        assert leg.pages_fetched == 2

    def test_circle_failure_leaves_leg_empty(self, point_descriptor):
        transport = FakeTransport(proximity=[REJECTED], circle=[REJECTED])
        spec = build_proximity_spec(POINT, 5.0, point_descriptor)

        leg = run(transport, spec, point_descriptor, 'proximity', radius_miles=5.0)

        assert len(transport.calls) == 2
        assert leg.failed
        assert leg.features == []

    def test_within_retry_for_rejected_contains(self, polygon_descriptor):
        descriptor = replace(polygon_descriptor, supports_contains_operator=True)
        transport = FakeTransport(
            containment=[REJECTED],
            within=[{'features': [polygon_feature(1, SQUARE)]}]
        )

        leg = run(transport, build_containment_spec(POINT, descriptor), descriptor, 'containment')

        assert len(transport.calls_for('within')) == 1
        assert leg.fallback_used == FALLBACK_WITHIN
        assert len(leg.features) == 1

    def test_transport_failure_is_not_retried(self, point_descriptor):
        transport = FakeTransport(proximity=[requests.exceptions.ConnectionError('refused')])
        spec = build_proximity_spec(POINT, 5.0, point_descriptor)

        leg = run(transport, spec, point_descriptor, 'proximity', radius_miles=5.0)

        assert len(transport.calls) == 1
        assert leg.failed
        assert leg.fallback_used is None

    def test_successful_leg_sends_no_fallback(self, point_descriptor):
        transport = FakeTransport(proximity=[{'features': [point_feature(1, -105.0, 40.0)]}])
        spec = build_proximity_spec(POINT, 5.0, point_descriptor)

        leg = run(transport, spec, point_descriptor, 'proximity', radius_miles=5.0)

        assert len(transport.calls) == 1
        assert leg.fallback_used is None


def test_circle_fallback_features_are_distance_filtered(point_descriptor):
    near = point_feature(1, -105.01, 40.0)
    # Circle corners reach past the radius; such hits are filtered client-side
    far = point_feature(2, -105.3, 40.0)
    transport = FakeTransport(proximity=[REJECTED], circle=[{'features': [far, near]}])

    features, metadata = asyncio.run(
        query_with_metadata(POINT, 5.0, point_descriptor, transport, FAST_SETTINGS)
    )

    assert [f.id for f in features] == ['1']
    assert metadata['legs']['proximity']['fallback_used'] == FALLBACK_CIRCLE
    assert metadata['outside_radius'] == 1
    assert metadata['error'] is None
