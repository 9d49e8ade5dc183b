"""Tests for the requests transport and the command line entry point."""

import asyncio
import json

import pytest
import requests

import geo_enrich
from core.models import EnrichedFeature, PointGeom
from core import transport as transport_module
from core.transport import USER_AGENT, RequestsTransport


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} Server Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.headers = {}
        self.posts = []
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append((url, data, timeout))
        self.headers = headers
        return self.response

    def close(self):
        self.closed = True


class TestRequestsTransport:
    def test_posts_form_params(self):
        session = FakeSession(FakeResponse({'features': []}))
        transport = RequestsTransport(timeout=5, session=session)

        result = asyncio.run(transport.fetch_json('https://example.test/0/query', {'f': 'json'}))

        assert result == {'features': []}
        assert session.posts == [('https://example.test/0/query', {'f': 'json'}, 5)]
        assert session.headers == {'User-Agent': USER_AGENT}

    def test_without_session_posts_per_request(self, monkeypatch):
        posts = []

        def fake_post(url, data=None, headers=None, timeout=None):
            posts.append((url, data, timeout))
            return FakeResponse({'features': [{'attributes': {}}]})

        monkeypatch.setattr(transport_module.requests, 'post', fake_post)
        transport = RequestsTransport(timeout=7)

        async def fetch_many():
            return await asyncio.gather(*[
                transport.fetch_json(f'https://example.test/{i}/query', {'f': 'json'})
                for i in range(3)
            ])

        results = asyncio.run(fetch_many())
        transport.close()

        assert len(results) == 3
        assert sorted(url for url, _, _ in posts) == [
            f'https://example.test/{i}/query' for i in range(3)
        ]
        assert {timeout for _, _, timeout in posts} == {7}

    def test_http_error_raises_request_exception(self):
        transport = RequestsTransport(session=FakeSession(FakeResponse({}, status=503)))
        with pytest.raises(requests.exceptions.RequestException):
            asyncio.run(transport.fetch_json('https://example.test/0/query', {}))

    def test_non_object_body_is_value_error(self):
        transport = RequestsTransport(session=FakeSession(FakeResponse([1, 2])))
        with pytest.raises(ValueError):
            asyncio.run(transport.fetch_json('https://example.test/0/query', {}))

    def test_close(self):
        session = FakeSession(FakeResponse({}))
        RequestsTransport(session=session).close()
        assert session.closed


def sample_feature():
    return EnrichedFeature(
        id='4',
        attributes={'id': '4', 'name': 'Well 4'},
        raw_attributes={'OBJECTID': 4, 'NAME': 'Well 4'},
        geometry=PointGeom(-105.01, 40.0),
        distance_miles=0.53,
        is_containing=False,
        layer_id=3,
        layer_name='Test Wells'
    )


def test_write_results(tmp_path):
    path = geo_enrich.write_results(
        {'Test Wells': [sample_feature()]},
        {'Test Wells': {'feature_count': 1}},
        tmp_path / 'out' / 'results.json'
    )

    payload = json.loads(path.read_text(encoding='utf-8'))
    feature = payload['layers']['Test Wells'][0]
    assert feature['id'] == '4'
    assert feature['geometry']['x'] == -105.01
    assert payload['metadata']['Test Wells']['feature_count'] == 1


def test_parse_args():
    args = geo_enrich.parse_args(['40.0', '-105.0', '--radius', '2.5', '--service', 'A', '--service', 'B'])
    assert (args.lat, args.lon, args.radius) == (40.0, -105.0, 2.5)
    assert args.services == ['A', 'B']
    assert args.output_file is None


class TestMain:
    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch, tmp_path):
        monkeypatch.setattr(geo_enrich, 'setup_logging', lambda **kwargs: tmp_path / 'run.log')

    def test_runs_selected_services(self, monkeypatch, tmp_path):
        calls = {}

        async def fake_process(point, radius_miles, descriptors, settings=None):
            calls['point'] = point
            calls['radius'] = radius_miles
            calls['names'] = [d.layer_name for d in descriptors]
            return {'Test Wells': [sample_feature()]}, {}

        monkeypatch.setattr(geo_enrich, 'process_all_layers', fake_process)
        output = tmp_path / 'results.json'

        results = geo_enrich.main(
            40.0, -105.0,
            services=['Alaska DNR Well Sites'],
            output_file=str(output),
            output_format='geojson'
        )

        assert list(results) == ['Test Wells']
        assert calls['names'] == ['Alaska DNR Well Sites']
        assert calls['radius'] == 5.0
        assert json.loads(output.read_text(encoding='utf-8'))['type'] == 'FeatureCollection'

    def test_invalid_point_returns_none(self, monkeypatch):
        async def fail_if_called(*args, **kwargs):
            raise AssertionError("no query expected")

        monkeypatch.setattr(geo_enrich, 'process_all_layers', fail_if_called)
        assert geo_enrich.main(95.0, 0.0, radius_miles=1.0) is None

    def test_missing_config_returns_none(self, tmp_path):
        assert geo_enrich.main(40.0, -105.0, config_path=str(tmp_path / 'missing.json')) is None


def test_write_results_as_geojson(tmp_path):
    path = geo_enrich.write_results(
        {'Test Wells': [sample_feature()]},
        {'Test Wells': {'feature_count': 1}},
        tmp_path / 'results.geojson',
        output_format='geojson'
    )

    payload = json.loads(path.read_text(encoding='utf-8'))
    assert payload['type'] == 'FeatureCollection'
    feature = payload['features'][0]
    assert feature['geometry'] == {'type': 'Point', 'coordinates': [-105.01, 40.0]}
    assert feature['properties']['enrich_id'] == '4'
    assert feature['properties']['layer_name'] == 'Test Wells'
    assert feature['properties']['NAME'] == 'Well 4'
    assert payload['metadata']['Test Wells']['feature_count'] == 1


def test_write_results_rejects_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        geo_enrich.write_results({}, {}, tmp_path / 'out.kml', output_format='kml')


def test_parse_args_format_and_verbose():
    args = geo_enrich.parse_args(['1', '2', '--format', 'geojson', '-v'])
    assert args.output_format == 'geojson'
    assert args.verbose
    assert geo_enrich.parse_args(['1', '2']).output_format == 'json'
