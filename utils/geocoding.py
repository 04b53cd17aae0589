import json
import logging
import math
import threading
import time
from config import (
    CACHE_DIR,
    EARTH_RADIUS_KM,
    GAZETTEER_ADMIN1_FILE,
    GAZETTEER_ADMIN2_FILE,
    GAZETTEER_CITIES_FILE,
    GAZETTEER_COUNTRIES_FILE,
    GEOCODING_CACHE_EXPIRATION_DAYS,
    GEOCODING_CACHE_FILE,
    PLACEHOLDER_FLAG,
)
from core.errors import GeocodeError
from core.models import GeocodeResult
from datetime import UTC, datetime
from dateutil.parser import parse as parse_date
from geopy.exc import GeopyError
from geopy.geocoders import GoogleV3, Nominatim
from pathlib import Path
from typing import Protocol
from utils.units import haversine_km

logger = logging.getLogger(__name__)


def country_flag(country_code: str) -> str:
    """Emoji flag for an ISO 3166-1 alpha-2 code, built from regional indicator symbols"""
    code = (country_code or '').strip().upper()
    if len(code) != 2 or not code.isascii() or not code.isalpha():
        return PLACEHOLDER_FLAG
    return ''.join(chr(0x1F1E6 + ord(char) - ord('A')) for char in code)


class Geocoder(Protocol):
    """
    Reverse geocoding capability

    locate() returns None when the lookup succeeded but matched nothing,
    and raises GeocodeError when the service itself failed.
    """

    def locate(self, longitude: float, latitude: float) -> GeocodeResult | None: ...


class GeocodingCache:
    """File-based cache for reverse geocoding results with expiration, safe to share between threads"""

    def __init__(
        self, cache_file: Path = CACHE_DIR / GEOCODING_CACHE_FILE, expiration_days: int = GEOCODING_CACHE_EXPIRATION_DAYS
    ):
        self.cache_file = cache_file
        self.expiration_days = expiration_days
        self._lock = threading.RLock()
        self.cache_data = self._load_cache()
        self.session_hits = 0
        self.session_misses = 0

    def _load_cache(self) -> dict:
        """Load cache from file with proper structure"""
        if self.cache_file.exists():
            try:
                with open(self.cache_file, encoding='utf-8') as f:
                    data = json.load(f)
                if 'metadata' in data and 'entries' in data:
                    return data
                logger.warning("Unrecognized geocoding cache format, starting fresh")
            except (json.JSONDecodeError, OSError):
                logger.warning("Could not load geocoding cache, starting fresh")

        return {
            'metadata': {
                'version': '2.0',
                'created': datetime.now(UTC).isoformat(),
                'last_updated': datetime.now(UTC).isoformat(),
                'total_entries': 0,
                'cache_hits': 0,
                'cache_misses': 0,
                'expiration_days': self.expiration_days,
            },
            'entries': {},
        }

    def _generate_cache_key(self, longitude: float, latitude: float) -> str:
        return f"reverse_{latitude:.6f}_{longitude:.6f}"

    def _is_expired(self, entry: dict) -> bool:
        """Check if cache entry has expired"""
        try:
            entry_time = parse_date(entry['timestamp'])
            age_days = (datetime.now(UTC) - entry_time).days
            return age_days > self.expiration_days
        except (KeyError, TypeError, ValueError, OverflowError):
            return True

    def get(self, longitude: float, latitude: float) -> dict | None:
        """Get a cached reverse geocoding response"""
        key = self._generate_cache_key(longitude, latitude)

        with self._lock:
            entry = self.cache_data['entries'].get(key)

            if entry and not self._is_expired(entry):
                self.session_hits += 1
                self.cache_data['metadata']['cache_hits'] += 1
                return entry.get('response')

            self.session_misses += 1
            self.cache_data['metadata']['cache_misses'] += 1

            if entry:
                del self.cache_data['entries'][key]
                self.cache_data['metadata']['total_entries'] -= 1

        return None

    def set(self, longitude: float, latitude: float, response: dict):
        """Store a reverse geocoding response"""
        key = self._generate_cache_key(longitude, latitude)

        entry = {
            'timestamp': datetime.now(UTC).isoformat(),
            'query_type': 'reverse',
            'query': {'latitude': latitude, 'longitude': longitude},
            'response': response,
        }

        with self._lock:
            if key not in self.cache_data['entries']:
                self.cache_data['metadata']['total_entries'] += 1

            self.cache_data['entries'][key] = entry
            self.cache_data['metadata']['last_updated'] = datetime.now(UTC).isoformat()
            self._save_cache()

    def clean_expired(self) -> int:
        """Remove expired entries from cache"""
        with self._lock:
            expired_keys = [key for key, entry in self.cache_data['entries'].items() if self._is_expired(entry)]

            for key in expired_keys:
                del self.cache_data['entries'][key]

            if expired_keys:
                self.cache_data['metadata']['total_entries'] -= len(expired_keys)
                self.cache_data['metadata']['last_updated'] = datetime.now(UTC).isoformat()
                self._save_cache()
                logger.info(f"Cleaned {len(expired_keys)} expired cache entries")

        return len(expired_keys)

    def clear(self):
        """Clear all cache entries"""
        with self._lock:
            entry_count = len(self.cache_data['entries'])
            self.cache_data['entries'] = {}
            self.cache_data['metadata']['total_entries'] = 0
            self.cache_data['metadata']['last_updated'] = datetime.now(UTC).isoformat()
            self._save_cache()
        logger.info(f"Cleared {entry_count} cache entries")

    def get_stats(self) -> dict:
        """Get cache statistics"""
        with self._lock:
            metadata = self.cache_data['metadata']
            total_hits = metadata['cache_hits']
            total_misses = metadata['cache_misses']

        total_requests = total_hits + total_misses
        hit_ratio = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            'total_entries': metadata['total_entries'],
            'cache_hits': total_hits,
            'cache_misses': total_misses,
            'hit_ratio_percent': round(hit_ratio, 1),
            'session_hits': self.session_hits,
            'session_misses': self.session_misses,
            'expiration_days': self.expiration_days,
            'created': metadata['created'],
            'last_updated': metadata['last_updated'],
        }

    def _save_cache(self):
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.cache_file, 'w', encoding='utf-8') as f:
            json.dump(self.cache_data, f, indent=2, ensure_ascii=False)


class CachedGeocoder:
    """Serve lookups from a GeocodingCache before asking the wrapped geocoder"""

    def __init__(self, geocoder: Geocoder, cache: GeocodingCache):
        self.geocoder = geocoder
        self.cache = cache

    def locate(self, longitude: float, latitude: float) -> GeocodeResult | None:
        cached = self.cache.get(longitude, latitude)
        if cached:
            logger.debug(f"Geocoding cache hit for {latitude}, {longitude}")
            return GeocodeResult.from_dict(cached)

        result = self.geocoder.locate(longitude, latitude)
        # Failures and empty lookups are never cached
        if result is not None:
            self.cache.set(longitude, latitude, result.to_dict())
        return result


class OnlineGeocoder:
    """Base for geopy-backed geocoders with a minimum interval between API calls"""

    def __init__(self, geocoder, min_api_interval: float = 1.0):
        self.geocoder = geocoder
        self.min_api_interval = min_api_interval
        self.last_api_call = 0.0
        self._rate_lock = threading.Lock()

    def enforce_rate_limit(self):
        """Sleep until min_api_interval has passed since the previous call"""
        with self._rate_lock:
            time_since_last = time.time() - self.last_api_call

            if time_since_last < self.min_api_interval:
                sleep_time = self.min_api_interval - time_since_last
                logger.debug(f"Rate limiting: sleeping {sleep_time:.2f} seconds")
                time.sleep(sleep_time)

            self.last_api_call = time.time()

    def reverse(self, longitude: float, latitude: float):
        return self.geocoder.reverse((latitude, longitude), exactly_one=True)

    def parse_location(self, raw: dict) -> GeocodeResult | None:
        raise NotImplementedError

    def locate(self, longitude: float, latitude: float) -> GeocodeResult | None:
        self.enforce_rate_limit()

        try:
            location = self.reverse(longitude, latitude)
        except GeopyError as e:
            raise GeocodeError(f"Geocoding failed for {latitude}, {longitude}: {e}") from e

        if location is None:
            logger.info(f"No geocoding results for {latitude}, {longitude}")
            return None

        return self.parse_location(location.raw)


class NominatimGeocoder(OnlineGeocoder):
    """OpenStreetMap Nominatim reverse geocoder"""

    def __init__(self, user_agent: str, timeout: int = 10, min_api_interval: float = 1.0):
        super().__init__(Nominatim(user_agent=user_agent, timeout=timeout), min_api_interval)

    def reverse(self, longitude: float, latitude: float):
        return self.geocoder.reverse((latitude, longitude), exactly_one=True, language='en', addressdetails=True)

    def parse_location(self, raw: dict) -> GeocodeResult | None:
        address = raw.get('address') or {}
        if not address:
            return None

        country_code = (address.get('country_code') or '').upper()
        name = (
            address.get('city')
            or address.get('town')
            or address.get('village')
            or address.get('municipality')
            or address.get('hamlet')
            or address.get('county')
            or raw.get('name')
            or 'Unknown'
        )

        return GeocodeResult(
            name=name,
            country_code=country_code,
            country_name=address.get('country') or 'Unknown',
            admin_region1=address.get('state') or address.get('region') or '',
            admin_region2=address.get('county') or None,
            flag=country_flag(country_code),
            confidence_distance=0.0,
        )


class GoogleGeocoder(OnlineGeocoder):
    """Google Geocoding API reverse geocoder; exact matches, so confidence distance is 0"""

    def __init__(self, api_key: str, timeout: int = 10, min_api_interval: float = 0.1):
        if not api_key:
            logger.warning("GOOGLE_MAPS_API_KEY is not set - geocoding will fail without a valid API key")
        self.api_key = api_key
        super().__init__(GoogleV3(api_key=api_key or None, timeout=timeout), min_api_interval)

    def reverse(self, longitude: float, latitude: float):
        if not self.api_key:
            raise GeocodeError("GOOGLE_MAPS_API_KEY is not set")
        return self.geocoder.reverse((latitude, longitude), exactly_one=True, language='en')

    def parse_location(self, raw: dict) -> GeocodeResult | None:
        components = raw.get('address_components') or []
        if not components:
            return None

        def component(types: list[str], short: bool = False) -> str:
            for item in components:
                if any(t in item.get('types', []) for t in types):
                    return item.get('short_name' if short else 'long_name') or ''
            return ''

        admin_region2 = component(['administrative_area_level_2'])
        country_code = component(['country'], short=True).upper()
        name = (
            component(['premise'])
            or component(['locality'])
            or component(['sublocality', 'sublocality_level_1'])
            or admin_region2
            or 'Unknown'
        )

        return GeocodeResult(
            name=name,
            country_code=country_code,
            country_name=component(['country']) or 'Unknown',
            admin_region1=component(['administrative_area_level_1']),
            admin_region2=admin_region2 or None,
            flag=country_flag(country_code),
            confidence_distance=0.0,
        )


class OfflineGeocoder:
    """
    Nearest-city reverse geocoder over GeoNames dump files

    Expects cities (e.g. cities1000.txt), admin1CodesASCII.txt, admin2Codes.txt
    and countryInfo.txt in gazetteer_dir. Cities are bucketed into one-degree
    cells so a lookup only scans the cells around the query point.
    confidence_distance is reported in kilometers.
    """

    MAX_RING = 180

    def __init__(self, gazetteer_dir: Path, cities_file: str = GAZETTEER_CITIES_FILE):
        self.gazetteer_dir = gazetteer_dir
        self.cities_file = cities_file
        self.cells: dict[tuple[int, int], list[dict]] = {}
        self.admin1_names: dict[str, str] = {}
        self.admin2_names: dict[str, str] = {}
        self.country_names: dict[str, str] = {}
        self._loaded = False
        self._load_lock = threading.Lock()

    def _read_rows(self, file_name: str, required: bool = False):
        path = self.gazetteer_dir / file_name
        if not path.exists():
            if required:
                raise GeocodeError(f"Gazetteer file not found: {path}")
            logger.warning(f"Gazetteer file not found: {path}")
            return

        with open(path, encoding='utf-8') as f:
            for line in f:
                if not line.strip() or line.startswith('#'):
                    continue
                yield line.rstrip('\n').split('\t')

    def load(self):
        """Load the gazetteer once; safe to call from several threads"""
        with self._load_lock:
            if self._loaded:
                return

            logger.info(f"Loading gazetteer from {self.gazetteer_dir}")

            for row in self._read_rows(GAZETTEER_COUNTRIES_FILE):
                if len(row) > 4:
                    self.country_names[row[0]] = row[4]

            for row in self._read_rows(GAZETTEER_ADMIN1_FILE):
                if len(row) > 1:
                    self.admin1_names[row[0]] = row[1]

            for row in self._read_rows(GAZETTEER_ADMIN2_FILE):
                if len(row) > 1:
                    self.admin2_names[row[0]] = row[1]

            city_count = 0
            for row in self._read_rows(self.cities_file, required=True):
                if len(row) < 12:
                    continue
                try:
                    latitude, longitude = float(row[4]), float(row[5])
                except ValueError:
                    continue
                city = {
                    'name': row[1],
                    'latitude': latitude,
                    'longitude': longitude,
                    'country_code': row[8],
                    'admin1_code': row[10],
                    'admin2_code': row[11],
                }
                self.cells.setdefault(self._cell(longitude, latitude), []).append(city)
                city_count += 1

            self._loaded = True
            logger.info(f"Gazetteer loaded: {city_count} cities, {len(self.country_names)} countries")

    def _cell(self, longitude: float, latitude: float) -> tuple[int, int]:
        return math.floor(latitude), math.floor(longitude)

    def _ring(self, center: tuple[int, int], radius: int):
        lat0, lon0 = center
        for dlat in range(-radius, radius + 1):
            for dlon in range(-radius, radius + 1):
                if max(abs(dlat), abs(dlon)) != radius:
                    continue
                # Longitude wraps around the antimeridian
                lon = (lon0 + dlon + 180) % 360 - 180
                yield lat0 + dlat, lon

    def _ring_lower_bound_km(self, longitude: float, latitude: float, center: tuple[int, int], radius: int) -> float:
        """Smallest possible distance from the query point to any city in ring `radius` or beyond"""
        if radius == 0:
            return 0.0
        lat0, lon0 = center
        lat_gap = min(lat0 + radius - latitude, latitude - (lat0 + 1 - radius))
        lon_gap = min(lon0 + radius - longitude, longitude - (lon0 + 1 - radius))

        # Every path to a cell at least lat_gap degrees north or south spans that much latitude
        lat_km = math.radians(lat_gap) * EARTH_RADIUS_KM
        # Distance to the nearest meridian lon_gap degrees away; meridians converge toward the poles
        lon_angle = math.asin(min(1.0, math.cos(math.radians(latitude)) * math.sin(math.radians(min(lon_gap, 90.0)))))
        lon_km = lon_angle * EARTH_RADIUS_KM

        return max(0.0, min(lat_km, lon_km))

    def nearest_city(self, longitude: float, latitude: float) -> tuple[dict, float] | None:
        """Find the closest city and its distance in kilometers"""
        self.load()
        center = self._cell(longitude, latitude)

        best = None
        best_distance = float('inf')

        for radius in range(self.MAX_RING + 1):
            for cell in self._ring(center, radius):
                for city in self.cells.get(cell, ()):
                    distance = haversine_km(longitude, latitude, city['longitude'], city['latitude'])
                    if distance < best_distance:
                        best, best_distance = city, distance
            # Stop once no unscanned ring can hold anything closer
            if best is not None and best_distance <= self._ring_lower_bound_km(longitude, latitude, center, radius + 1):
                break

        if best is None:
            return None
        return best, best_distance

    def locate(self, longitude: float, latitude: float) -> GeocodeResult | None:
        match = self.nearest_city(longitude, latitude)
        if match is None:
            return None

        city, distance = match
        country_code = city['country_code']
        admin1_key = f"{country_code}.{city['admin1_code']}"
        admin2_key = f"{admin1_key}.{city['admin2_code']}"

        return GeocodeResult(
            name=city['name'],
            country_code=country_code,
            country_name=self.country_names.get(country_code, ''),
            admin_region1=self.admin1_names.get(admin1_key, ''),
            admin_region2=self.admin2_names.get(admin2_key) or None,
            flag=country_flag(country_code),
            confidence_distance=distance,
        )


def build_geocoder(
    kind: str,
    gazetteer_dir: Path | None = None,
    google_api_key: str = '',
    user_agent: str = 'photo-journey/1.0',
    timeout: int = 10,
    min_api_interval: float = 1.0,
    cache: GeocodingCache | None = None,
) -> Geocoder:
    """Create the geocoder selected by kind ('offline', 'nominatim' or 'google')"""
    if kind == 'offline':
        if gazetteer_dir is None:
            raise ValueError("The offline geocoder needs a gazetteer directory")
        # Local lookups are cheap, so they are not cached
        return OfflineGeocoder(gazetteer_dir)
    elif kind == 'nominatim':
        geocoder = NominatimGeocoder(user_agent=user_agent, timeout=timeout, min_api_interval=min_api_interval)
    elif kind == 'google':
        geocoder = GoogleGeocoder(api_key=google_api_key, timeout=timeout, min_api_interval=min(min_api_interval, 0.1))
    else:
        raise ValueError(f"Unknown geocoder: {kind}")

    if cache is not None:
        return CachedGeocoder(geocoder, cache)
    return geocoder
