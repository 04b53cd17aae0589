"""Test data fixtures for photo journey tests"""

from PIL import Image
from core.errors import GeocodeError
from core.models import CaptureMetadata, GeocodeResult, PhotoRecord, format_place_name
from datetime import UTC, datetime, timedelta
from pathlib import Path
from utils.geocoding import country_flag

BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=UTC)

# (longitude, latitude)
HOME = (-77.4360, 37.5407)
RICHMOND = (-77.4360, 37.5407)
WASHINGTON = (-77.0369, 38.9072)
NEW_YORK = (-74.0060, 40.7128)
PARIS = (2.3522, 48.8566)


def make_image(path: Path, size: tuple[int, int] = (64, 48), color: str = 'skyblue', **save_kwargs) -> Path:
    """Write a small solid-color image"""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new('RGB', size, color=color).save(path, **save_kwargs)
    return path


def make_geocode(name: str = 'Richmond', country_code: str = 'US', country_name: str = 'United States', admin1: str = 'Virginia'):
    return GeocodeResult(
        name=name,
        country_code=country_code,
        country_name=country_name,
        admin_region1=admin1,
        flag=country_flag(country_code),
        confidence_distance=1.5,
    )


def make_record(
    record_id: int,
    hours: float = 0,
    coords: tuple[float, float] | None = RICHMOND,
    altitude: int | None = None,
    geocode: GeocodeResult | None = None,
) -> PhotoRecord:
    """Build a PhotoRecord taken `hours` after BASE_TIME"""
    geocode = geocode or make_geocode()
    longitude, latitude = coords if coords else (None, None)

    return PhotoRecord(
        id=record_id,
        file_name=f"IMG_{record_id:04d}.jpg",
        thumbnail_id=f"thumb-IMG_{record_id:04d}.webp",
        timestamp=BASE_TIME + timedelta(hours=hours),
        latitude=latitude,
        longitude=longitude,
        altitude_feet=altitude,
        speed_mph=0.0,
        make='Apple',
        model='iPhone 15',
        geo_name=geocode.name,
        formatted_name=format_place_name(geocode),
        country_code=geocode.country_code,
        country_name=geocode.country_name,
        flag=geocode.flag,
        admin_region1=geocode.admin_region1,
        admin_region2=geocode.admin_region2,
        geocode_confidence_distance=geocode.confidence_distance,
        distance_from_home=None,
    )


class StubExtractor:
    """Return canned metadata (or raise canned errors) keyed by file name"""

    def __init__(self, by_name: dict):
        self.by_name = by_name

    def extract(self, image_path: Path) -> CaptureMetadata:
        value = self.by_name[image_path.name]
        if isinstance(value, Exception):
            raise value
        return value


class StubGeocoder:
    """Geocoder keyed by (longitude, latitude); unknown points return None"""

    def __init__(self, places: dict | None = None, fail: bool = False):
        self.places = places or {}
        self.fail = fail
        self.calls = []

    def locate(self, longitude: float, latitude: float) -> GeocodeResult | None:
        self.calls.append((longitude, latitude))
        if self.fail:
            raise GeocodeError("service unavailable")
        return self.places.get((longitude, latitude))


class StubThumbnails:
    def generate(self, image_path: Path, output_dir: Path | None = None) -> str:
        return f"thumb-{image_path.stem}.webp"
