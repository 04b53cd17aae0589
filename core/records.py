import logging
import threading
from config import GEOCODE_FAILURE_POLICIES
from contextlib import nullcontext
from core.errors import GeocodeError, GeocodeFailedError, PhotoProcessingError
from core.exif import MetadataExtractor
from core.models import CaptureMetadata, Coordinate, GeocodeResult, PhotoRecord, format_place_name
from core.thumbnails import ThumbnailGenerator
from pathlib import Path
from utils.geocoding import Geocoder
from utils.units import haversine_miles

logger = logging.getLogger(__name__)


class PhotoRecordBuilder:
    """
    Build one PhotoRecord from one image file

    Stages run in order: metadata, geocode, thumbnail. A failing stage raises a
    PhotoProcessingError naming the file and the stage. The builder keeps no
    per-photo state, so one instance can be shared by concurrent workers.
    """

    def __init__(
        self,
        extractor: MetadataExtractor,
        geocoder: Geocoder,
        thumbnails: ThumbnailGenerator,
        home: Coordinate,
        geocode_failure_policy: str = 'fallback',
        geocode_slots: threading.Semaphore | None = None,
        decode_slots: threading.Semaphore | None = None,
    ):
        if geocode_failure_policy not in GEOCODE_FAILURE_POLICIES:
            raise ValueError(f"Unknown geocode failure policy: {geocode_failure_policy}")

        self.extractor = extractor
        self.geocoder = geocoder
        self.thumbnails = thumbnails
        self.home = home
        self.geocode_failure_policy = geocode_failure_policy
        self.geocode_slots = geocode_slots
        self.decode_slots = decode_slots

    def _slot(self, semaphore: threading.Semaphore | None):
        return semaphore if semaphore is not None else nullcontext()

    def distance_from_home(self, metadata: CaptureMetadata) -> float | None:
        if not metadata.located:
            return None
        return haversine_miles(self.home.longitude, self.home.latitude, metadata.longitude, metadata.latitude)

    def geocode(self, file_name: str, metadata: CaptureMetadata) -> GeocodeResult:
        """Geocode a photo's position, applying the failure policy"""
        if not metadata.located:
            return GeocodeResult.placeholder()

        try:
            with self._slot(self.geocode_slots):
                result = self.geocoder.locate(metadata.longitude, metadata.latitude)
        except GeocodeError as e:
            reason = f"geocoding service failed: {e}"
        else:
            if result is not None:
                return result
            reason = f"no place found near {metadata.latitude}, {metadata.longitude}"

        if self.geocode_failure_policy == 'skip':
            raise GeocodeFailedError(file_name, reason)

        logger.warning(f"{file_name}: {reason} - using placeholder location")
        return GeocodeResult.placeholder()

    def build(self, image_path: Path, record_id: int, thumbnail_dir: Path | None = None) -> PhotoRecord:
        """
        Run every stage for one file

        Args:
            image_path: Source image
            record_id: Identifier assigned by the caller from the enumeration order
            thumbnail_dir: Where to write the thumbnail (defaults to the generator's choice)

        Returns:
            PhotoRecord: immutable record for this photo
        """
        file_name = image_path.name

        try:
            with self._slot(self.decode_slots):
                metadata = self.extractor.extract(image_path)

            distance = self.distance_from_home(metadata)
            geocode = self.geocode(file_name, metadata)

            with self._slot(self.decode_slots):
                thumbnail_id = self.thumbnails.generate(image_path, thumbnail_dir)
        except PhotoProcessingError:
            raise
        except Exception as e:
            raise PhotoProcessingError(file_name, f"unexpected error: {e}") from e

        return PhotoRecord(
            id=record_id,
            file_name=file_name,
            thumbnail_id=thumbnail_id,
            timestamp=metadata.timestamp,
            latitude=metadata.latitude,
            longitude=metadata.longitude,
            altitude_feet=metadata.altitude_feet,
            speed_mph=metadata.speed_mph,
            make=metadata.make,
            model=metadata.model,
            geo_name=geocode.name,
            formatted_name=format_place_name(geocode),
            country_code=geocode.country_code,
            country_name=geocode.country_name,
            flag=geocode.flag,
            admin_region1=geocode.admin_region1 or '',
            admin_region2=geocode.admin_region2,
            geocode_confidence_distance=geocode.confidence_distance,
            distance_from_home=distance,
        )
