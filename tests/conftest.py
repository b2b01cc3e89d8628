"""Shared fixtures: a temporary data directory and a scripted Nominatim."""
import pytest
import requests

from app import create_app
from geocoding import GeocodingPipeline, NominatimClient
from storage import GeocodeCache


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeNominatim:
    """
    Stands in for requests.Session when talking to Nominatim.

    Answers are keyed by the ``q`` text, or ``postalcode=<code>`` for
    structured postal-code searches. Unknown searches return no results.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, key, lat, lon):
        self.routes[key] = [{'lat': str(lat), 'lon': str(lon), 'display_name': key}]

    def fail(self, key, outcome):
        self.routes[key] = outcome

    def get(self, url, params=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append({'url': url, 'params': params, 'headers': headers, 'timeout': timeout})
        key = params.get('q') or f"postalcode={params.get('postalcode')}"
        outcome = self.routes.get(key, [])
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        return FakeResponse(outcome)

    @property
    def queries(self):
        return [c['params'].get('q') or f"postalcode={c['params'].get('postalcode')}" for c in self.calls]


@pytest.fixture
def nominatim():
    return FakeNominatim()


@pytest.fixture
def cache(tmp_path):
    return GeocodeCache(str(tmp_path / 'geo-cache.json'))


@pytest.fixture
def pipeline(nominatim, cache):
    client = NominatimClient(session=nominatim, min_interval=0)
    return GeocodingPipeline(client, cache)


@pytest.fixture
def app_config(tmp_path):
    return {
        'TESTING': True,
        'DATA_DIR': str(tmp_path),
        'USERS_FILE': None,
        'CACHE_FILE': None,
        'SEED_FILE': None,
        'IMPORT_SEED': False,
        'NOMINATIM_MIN_INTERVAL': 0,
    }


@pytest.fixture
def app(app_config, nominatim):
    return create_app(app_config, session=nominatim)


@pytest.fixture
def client(app):
    return app.test_client()
