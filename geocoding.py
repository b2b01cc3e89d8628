"""
Geocoding for BloodLink
Resolves free-form addresses to coordinates through Nominatim, trying an ordered
chain of lookup strategies and caching whatever resolves.
"""
import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

import requests

from addresses import ParsedAddress, guess_city, parse_address
from errors import GeocodeNotFound, RemoteLookupFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float
    address_normalized: str = ''

    def to_dict(self):
        return {'lat': self.lat, 'lon': self.lon, 'addressNormalized': self.address_normalized}

    @classmethod
    def from_dict(cls, data):
        return cls(coordinate(data['lat']), coordinate(data['lon']), str(data.get('addressNormalized') or ''))


def coordinate(value) -> float:
    """Float from a provider or cache value; NaN and infinities raise ValueError"""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite coordinate: {value!r}")
    return number


def addr_cache_key(address: ParsedAddress) -> str:
    return f"addr:{address.normalized.lower()}"


def pin_cache_key(address: ParsedAddress) -> str:
    return f"pin:{address.postal_code}"


# ============== NOMINATIM CLIENT ==============

class NominatimClient:
    """
    Thin wrapper around the Nominatim ``search`` endpoint.

    Every request is scoped to one country and one result language. Calls are
    spaced at least ``min_interval`` seconds apart (measured between call
    starts) so the public service's one-request-per-second policy holds even
    when several requests arrive together.
    """

    def __init__(
        self,
        base_url: str = 'https://nominatim.openstreetmap.org/search',
        user_agent: str = 'BloodLink/1.0 (contact@example.com)',
        country_code: str = 'in',
        language: str = 'en',
        timeout: float = 15.0,
        min_interval: float = 1.1,
        session: Optional[requests.Session] = None,
        clock=time.monotonic,
        sleep=time.sleep,
    ) -> None:
        self.base_url = base_url
        self.country_code = country_code
        self.language = language
        self.timeout = timeout
        self.min_interval = min_interval
        self.session = session or requests.Session()
        self.headers = {'User-Agent': user_agent}
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: Optional[float] = None

    @classmethod
    def from_config(cls, config, session=None):
        return cls(
            base_url=config['NOMINATIM_URL'],
            user_agent=config['NOMINATIM_USER_AGENT'],
            country_code=config['GEOCODE_COUNTRY_CODE'],
            language=config['GEOCODE_LANGUAGE'],
            timeout=config['NOMINATIM_TIMEOUT'],
            min_interval=config['NOMINATIM_MIN_INTERVAL'],
            session=session,
        )

    def _wait_for_slot(self) -> None:
        with self._lock:
            if self._last_call is not None:
                remaining = self.min_interval - (self._clock() - self._last_call)
                if remaining > 0:
                    self._sleep(remaining)
            self._last_call = self._clock()

    def search(
        self,
        query: Optional[str] = None,
        postal_code: Optional[str] = None,
        limit: int = 1,
        address_details: bool = True,
    ) -> List[Dict]:
        """Run one search by free text or by postal code; returns the raw result list."""
        if not query and not postal_code:
            raise ValueError("search needs a query or a postal code")

        params = {
            'format': 'jsonv2',
            'limit': limit,
            'countrycodes': self.country_code,
            'accept-language': self.language,
        }
        if query:
            params['q'] = query
        else:
            params['postalcode'] = postal_code
        if address_details:
            params['addressdetails'] = 1

        self._wait_for_slot()
        try:
            response = self.session.get(
                self.base_url, params=params, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise RemoteLookupFailure(f"Nominatim search failed: {e}") from e

        return data if isinstance(data, list) else []


def first_point(results, normalized) -> Optional[GeoPoint]:
    """GeoPoint from the provider's top-ranked result, if it carries usable coordinates"""
    if not results:
        return None
    top = results[0]
    try:
        return GeoPoint(coordinate(top['lat']), coordinate(top['lon']), normalized)
    except (KeyError, TypeError, ValueError):
        logger.debug("Discarding result without coordinates: %r", top)
        return None


# ============== LOOKUP STRATEGIES ==============

class LookupStrategy:
    """
    One stage of the fallback chain.

    ``search_params`` returns the keyword arguments for ``NominatimClient.search``
    or None when the stage does not apply to the address. A stage with
    ``check_cache`` set answers from the cache before going to the network.
    """

    name = 'lookup'
    check_cache = False

    def cache_key(self, address: ParsedAddress) -> str:
        raise NotImplementedError

    def search_params(self, address: ParsedAddress) -> Optional[Dict]:
        raise NotImplementedError

    def __repr__(self):
        return f"<{self.__class__.__name__}>"


class FullAddressSearch(LookupStrategy):
    name = 'full-address'
    check_cache = True

    def cache_key(self, address):
        return addr_cache_key(address)

    def search_params(self, address):
        return {'query': address.normalized, 'limit': 3}


class PostalCodeSearch(LookupStrategy):
    name = 'postal-code'
    check_cache = True

    def cache_key(self, address):
        return pin_cache_key(address)

    def search_params(self, address):
        if not address.postal_code:
            return None
        return {'postal_code': address.postal_code, 'limit': 1}


class RegionalSearch(LookupStrategy):
    """City guessed from the text in front of a known region name, plus the PIN code."""

    name = 'regional'

    def __init__(self, regions, country):
        self.regions = list(regions)
        self.country = country

    def cache_key(self, address):
        return addr_cache_key(address)

    def search_params(self, address):
        for region in self.regions:
            city = guess_city(address.normalized, region)
            if city:
                locality = ' '.join(part for part in (city, address.postal_code) if part)
                return {'query': f"{locality}, {region}, {self.country}", 'limit': 3}
        return None


class PostalCodeTextSearch(LookupStrategy):
    """Last resort: the PIN code alone as free text, resolving to the postal area centroid."""

    name = 'postal-code-text'

    def __init__(self, country):
        self.country = country

    def cache_key(self, address):
        return pin_cache_key(address)

    def search_params(self, address):
        if not address.postal_code:
            return None
        return {'query': f"{address.postal_code}, {self.country}", 'limit': 1, 'address_details': False}


def default_strategies(regions=('Tamil Nadu',), country='India'):
    return [
        FullAddressSearch(),
        PostalCodeSearch(),
        RegionalSearch(regions, country),
        PostalCodeTextSearch(country),
    ]


# ============== PIPELINE ==============

class GeocodingPipeline:
    def __init__(self, client, cache, strategies=None):
        self.client = client
        self.cache = cache
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    @classmethod
    def from_config(cls, config, cache, session=None):
        client = NominatimClient.from_config(config, session=session)
        strategies = default_strategies(config['GEOCODE_REGIONS'], config['GEOCODE_COUNTRY'])
        return cls(client, cache, strategies)

    def resolve(self, raw_address) -> GeoPoint:
        """
        Resolve one address to one coordinate.

        Strategies run in order and the first that yields a point wins; its
        point is cached under that strategy's key. A provider failure only
        ends the current stage. Raises GeocodeNotFound when every stage
        comes up empty.
        """
        address = parse_address(raw_address)
        if not address.normalized:
            raise GeocodeNotFound(raw_address)

        for strategy in self.strategies:
            params = strategy.search_params(address)
            if params is None:
                continue
            key = strategy.cache_key(address)

            if strategy.check_cache:
                cached = self.cache.get(key)
                if cached is not None:
                    logger.debug("Cache hit %s", key)
                    return replace(cached, address_normalized=address.normalized)

            logger.debug("Geocoding %r via %s", address.normalized, strategy.name)
            try:
                results = self.client.search(**params)
            except RemoteLookupFailure as e:
                logger.warning("%s lookup failed for %r: %s", strategy.name, address.normalized, e)
                continue

            point = first_point(results, address.normalized)
            if point is not None:
                self.cache.set(key, point)
                logger.info("Geocoded %r via %s -> (%s, %s)", address.normalized, strategy.name, point.lat, point.lon)
                return point

        raise GeocodeNotFound(raw_address)
