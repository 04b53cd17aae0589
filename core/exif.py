import logging
import math
from PIL import ExifTags
from config import MAX_VALID_LATITUDE, MAX_VALID_LONGITUDE, MIN_VALID_LATITUDE, MIN_VALID_LONGITUDE
from core.errors import ImageDecodeError, MissingMetadataError
from core.imaging import open_image
from core.models import CaptureMetadata
from datetime import UTC, datetime
from dateutil.parser import parse as parse_date
from pathlib import Path
from utils.units import kmh_to_mph, knots_to_mph, meters_to_feet

logger = logging.getLogger(__name__)

EXIF_TIMESTAMP_FORMAT = '%Y:%m:%d %H:%M:%S'


def dms_to_degrees(dms, ref: str) -> float:
    """Convert an EXIF (degrees, minutes, seconds) triple to signed decimal degrees"""
    degrees, minutes, seconds = (float(value) for value in dms)
    result = degrees + minutes / 60.0 + seconds / 3600.0
    if ref.strip().upper() in ('S', 'W'):
        result = -result
    return result


def parse_exif_timestamp(value: str | None, offset: str | None = None) -> datetime | None:
    """
    Parse an EXIF 'YYYY:MM:DD HH:MM:SS' value into a timezone-aware datetime

    Args:
        value: DateTimeOriginal as stored in the file
        offset: OffsetTimeOriginal (e.g. '+02:00') when the camera recorded one

    Returns:
        datetime: aware datetime; values without an offset are taken as UTC
    """
    if not value:
        return None

    try:
        dt = datetime.strptime(str(value).strip()[:19], EXIF_TIMESTAMP_FORMAT)
    except ValueError:
        logger.debug(f"Unparseable EXIF timestamp: {value!r}")
        return None

    if offset:
        try:
            return parse_date(f"{dt.isoformat()}{str(offset).strip()}")
        except ValueError:
            logger.warning(f"Ignoring invalid EXIF time offset {offset!r}")

    return dt.replace(tzinfo=UTC)


def _as_text(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bytes):
        value = value.decode('ascii', errors='ignore')
    return str(value).strip('\x00 ').strip()


def _altitude_ref(value) -> int:
    if isinstance(value, bytes):
        return value[0] if value else 0
    return int(value or 0)


class MetadataExtractor:
    """Read capture time, GPS position, altitude, speed and camera from an image's EXIF data"""

    def validate_coordinates(self, lat: float, lon: float) -> bool:
        return MIN_VALID_LATITUDE <= lat <= MAX_VALID_LATITUDE and MIN_VALID_LONGITUDE <= lon <= MAX_VALID_LONGITUDE

    def read_tags(self, image_path: Path) -> tuple[dict, dict]:
        """Return (image/EXIF tags, GPS tags) keyed by their EXIF tag names"""
        with open_image(image_path) as image:
            try:
                exif = image.getexif()
                exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
                gps_ifd = exif.get_ifd(ExifTags.IFD.GPSInfo)
            except (OSError, ValueError, SyntaxError) as e:
                raise ImageDecodeError(image_path.name, f"unreadable EXIF data: {e}") from e

        tags = {ExifTags.TAGS.get(tag_id, tag_id): value for tag_id, value in exif.items()}
        tags.update({ExifTags.TAGS.get(tag_id, tag_id): value for tag_id, value in exif_ifd.items()})
        gps = {ExifTags.GPSTAGS.get(tag_id, tag_id): value for tag_id, value in gps_ifd.items()}

        return tags, gps

    def _gps_number(self, file_name: str, gps: dict, tag: str) -> float | None:
        """Read an optional numeric GPS tag; unreadable or non-finite values count as absent"""
        value = gps.get(tag)
        if value is None:
            return None
        try:
            number = float(value)
        except (TypeError, ValueError, ZeroDivisionError):
            logger.warning(f"Unreadable {tag} in {file_name}")
            return None
        # Cameras store an unknown value as 0/0, which reads as nan
        if not math.isfinite(number):
            logger.warning(f"Unknown {tag} in {file_name}")
            return None
        return number

    def build_metadata(self, file_name: str, tags: dict, gps: dict) -> CaptureMetadata:
        """Normalize raw EXIF tags into a CaptureMetadata"""
        timestamp = parse_exif_timestamp(tags.get('DateTimeOriginal'), tags.get('OffsetTimeOriginal'))
        if timestamp is None:
            raise MissingMetadataError(file_name, "missing DateTimeOriginal capture timestamp")

        latitude = longitude = None
        lat_dms, lat_ref = gps.get('GPSLatitude'), gps.get('GPSLatitudeRef')
        lon_dms, lon_ref = gps.get('GPSLongitude'), gps.get('GPSLongitudeRef')
        if lat_dms and lon_dms:
            try:
                lat = dms_to_degrees(lat_dms, _as_text(lat_ref) or 'N')
                lon = dms_to_degrees(lon_dms, _as_text(lon_ref) or 'E')
            except (TypeError, ValueError, ZeroDivisionError) as e:
                logger.warning(f"Unreadable GPS position in {file_name}: {e}")
            else:
                if self.validate_coordinates(lat, lon):
                    latitude, longitude = lat, lon
                else:
                    logger.warning(f"Invalid coordinates in {file_name}: lat={lat}, lon={lon}")

        altitude_feet = None
        meters = self._gps_number(file_name, gps, 'GPSAltitude')
        if meters is not None:
            # Altitude ref 1 means below sea level
            if _altitude_ref(gps.get('GPSAltitudeRef')) == 1:
                meters = -meters
            altitude_feet = meters_to_feet(meters)

        speed_mph = 0.0
        speed = self._gps_number(file_name, gps, 'GPSSpeed')
        if speed is not None:
            speed_ref = _as_text(gps.get('GPSSpeedRef')).upper() or 'K'
            if speed_ref == 'M':
                speed_mph = speed
            elif speed_ref == 'N':
                speed_mph = knots_to_mph(speed)
            else:
                speed_mph = kmh_to_mph(speed)

        return CaptureMetadata(
            timestamp=timestamp,
            latitude=latitude,
            longitude=longitude,
            altitude_feet=altitude_feet,
            speed_mph=speed_mph,
            make=_as_text(tags.get('Make')),
            model=_as_text(tags.get('Model')),
        )

    def extract(self, image_path: Path) -> CaptureMetadata:
        """Read and normalize capture metadata for one image file"""
        tags, gps = self.read_tags(image_path)
        return self.build_metadata(image_path.name, tags, gps)
