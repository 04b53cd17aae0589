"""Data model for photo records and the journey aggregate."""

from config import PLACEHOLDER_FLAG, UNKNOWN_COUNTRY_CODE
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Coordinate:
    longitude: float
    latitude: float


@dataclass(frozen=True)
class CaptureMetadata:
    """Capture metadata read from one image, already in output units"""

    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    altitude_feet: int | None = None
    speed_mph: float = 0.0
    make: str = ''
    model: str = ''

    @property
    def located(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True)
class GeocodeResult:
    """Place information returned by a geocoder for one coordinate"""

    name: str
    country_code: str
    country_name: str
    admin_region1: str = ''
    admin_region2: str | None = None
    flag: str = PLACEHOLDER_FLAG
    confidence_distance: float = 0.0

    @classmethod
    def placeholder(cls) -> 'GeocodeResult':
        """Degraded result used when a location is unknown or could not be geocoded"""
        return cls(name='', country_code=UNKNOWN_COUNTRY_CODE, country_name='', flag=PLACEHOLDER_FLAG)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'countryCode': self.country_code,
            'countryName': self.country_name,
            'adminName1': self.admin_region1,
            'adminName2': self.admin_region2,
            'flag': self.flag,
            'distance': self.confidence_distance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'GeocodeResult':
        return cls(
            name=data.get('name') or '',
            country_code=data.get('countryCode') or UNKNOWN_COUNTRY_CODE,
            country_name=data.get('countryName') or '',
            admin_region1=data.get('adminName1') or '',
            admin_region2=data.get('adminName2') or None,
            flag=data.get('flag') or PLACEHOLDER_FLAG,
            confidence_distance=float(data.get('distance') or 0.0),
        )


def format_place_name(geocode: GeocodeResult) -> str:
    """
    Build the display name for a place

    US places are qualified by their state, everything else by country name.
    Empty parts are left out so a missing region never leaves a dangling comma.
    """
    region = geocode.admin_region1 if geocode.country_code == 'US' else geocode.country_name
    return ', '.join(part for part in (geocode.name, region) if part)


@dataclass(frozen=True)
class PhotoRecord:
    id: int
    file_name: str
    thumbnail_id: str
    timestamp: datetime
    latitude: float | None
    longitude: float | None
    altitude_feet: int | None
    speed_mph: float
    make: str
    model: str
    geo_name: str
    formatted_name: str
    country_code: str
    country_name: str
    flag: str
    admin_region1: str
    admin_region2: str | None
    geocode_confidence_distance: float
    distance_from_home: float | None

    @property
    def located(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict:
        """Serialize with the field names the presentation layer reads"""
        data = {
            'id': self.id,
            'image': self.file_name,
            'imageThumb': self.thumbnail_id,
            'altitude': self.altitude_feet,
            'timestamp': self.timestamp.isoformat(),
            'speed': self.speed_mph,
            'make': self.make,
            'model': self.model,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'geoName': self.geo_name,
            'formattedName': self.formatted_name,
            'countryCode': self.country_code,
            'countryName': self.country_name,
            'flag': self.flag,
            'adminName1': self.admin_region1,
            'adminName2': self.admin_region2,
            'geoDistance': self.geocode_confidence_distance,
            'distance': self.distance_from_home,
        }
        # Absent optional values are left out rather than written as null; an unlocated
        # photo has no altitude, coordinates or distance from home
        return {key: value for key, value in data.items() if value is not None}


@dataclass(frozen=True)
class AltitudeStats:
    min: int = 0
    max: int = 0
    average: int = 0

    def to_dict(self) -> dict:
        return {'min': self.min, 'max': self.max, 'average': self.average}


@dataclass(frozen=True)
class CountryInfo:
    country_code: str
    country_name: str
    flag: str

    def to_dict(self) -> dict:
        return {'countryCode': self.country_code, 'countryName': self.country_name, 'flag': self.flag}


@dataclass(frozen=True)
class JourneyAggregate:
    """Everything derived from one run; records are ordered newest first"""

    records: tuple[PhotoRecord, ...]
    total_distance_traveled: float
    altitude_stats: AltitudeStats
    country_totals: tuple[CountryInfo, ...]
    us_state_totals: tuple[str, ...]
    image_points: dict
    image_route: dict

    def to_document(self) -> dict:
        return {
            'images': [record.to_dict() for record in self.records],
            'altitudeStats': self.altitude_stats.to_dict(),
            'countryTotals': [country.to_dict() for country in self.country_totals],
            'usTotals': list(self.us_state_totals),
            'distanceTraveled': self.total_distance_traveled,
            'imagesPoints': self.image_points,
            'imagesRoute': self.image_route,
        }


@dataclass(frozen=True)
class SkippedPhoto:
    file_name: str
    stage: str
    reason: str

    def to_dict(self) -> dict:
        return {'file': self.file_name, 'stage': self.stage, 'reason': self.reason}


@dataclass
class RunReport:
    """Outcome of one run: which photos made it and why the others did not"""

    source_dir: str
    total_files: int = 0
    succeeded: list[str] = field(default_factory=list)
    skipped: list[SkippedPhoto] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'source_dir': self.source_dir,
            'total_files': self.total_files,
            'succeeded': len(self.succeeded),
            'skipped': len(self.skipped),
            'skipped_photos': [skip.to_dict() for skip in self.skipped],
        }
