"""Journey aggregation: enumerate photos, build records concurrently, then derive
ordered, order-dependent and order-independent aggregates from the full set."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from config import IMAGE_EXTENSIONS, THUMBNAIL_PREFIX, UNKNOWN_COUNTRY_CODE
from core.errors import PhotoProcessingError, SourceDirectoryError
from core.models import AltitudeStats, Coordinate, CountryInfo, JourneyAggregate, PhotoRecord, RunReport, SkippedPhoto
from core.records import PhotoRecordBuilder
from pathlib import Path
from utils.units import haversine_miles

logger = logging.getLogger(__name__)


def chronological(records: list[PhotoRecord]) -> list[PhotoRecord]:
    """Oldest first; equal timestamps fall back to the enumeration id"""
    return sorted(records, key=lambda record: (record.timestamp, record.id))


def newest_first(records: list[PhotoRecord]) -> list[PhotoRecord]:
    return list(reversed(chronological(records)))


def calc_distance_traveled(records: list[PhotoRecord], home: Coordinate) -> float:
    """
    Fold haversine distance over records in chronological order

    records must be newest first, the order of JourneyAggregate.records; they
    are walked in reverse. The first leg starts at home. Records without
    coordinates are skipped and the chain bridges to the next located record.
    """
    total = 0.0
    prev_lon, prev_lat = home.longitude, home.latitude

    for record in reversed(records):
        if not record.located:
            continue
        total += haversine_miles(prev_lon, prev_lat, record.longitude, record.latitude)
        prev_lon, prev_lat = record.longitude, record.latitude

    return total


def calc_altitude_stats(records: list[PhotoRecord]) -> AltitudeStats:
    altitudes = [record.altitude_feet for record in records if record.altitude_feet is not None]
    if not altitudes:
        return AltitudeStats(min=0, max=0, average=0)

    return AltitudeStats(min=min(altitudes), max=max(altitudes), average=round(sum(altitudes) / len(altitudes)))


def calc_country_totals(records: list[PhotoRecord]) -> list[CountryInfo]:
    """Distinct countries in the given order; the first record seen for a country supplies its name and flag"""
    countries: dict[str, CountryInfo] = {}

    for record in records:
        code = record.country_code
        if not code or code == UNKNOWN_COUNTRY_CODE or code in countries:
            continue
        countries[code] = CountryInfo(country_code=code, country_name=record.country_name, flag=record.flag)

    return list(countries.values())


def calc_us_state_totals(records: list[PhotoRecord]) -> list[str]:
    states: dict[str, None] = {}

    for record in records:
        if record.country_code == 'US' and record.admin_region1:
            states.setdefault(record.admin_region1, None)

    return list(states)


def gen_geojson_points(records: list[PhotoRecord]) -> dict:
    """GeoJSON FeatureCollection with one Point per located record"""
    return {
        'type': 'FeatureCollection',
        'features': [
            {
                'type': 'Feature',
                'geometry': {'type': 'Point', 'coordinates': [record.longitude, record.latitude]},
                'properties': {
                    'id': record.id,
                    'title': record.formatted_name or record.geo_name,
                    'formattedName': record.formatted_name,
                    'image': record.file_name,
                    'imageThumb': record.thumbnail_id,
                },
            }
            for record in records
            if record.located
        ],
    }


def gen_geojson_route(records: list[PhotoRecord]) -> dict:
    """GeoJSON LineString through located records; records must be chronological"""
    coordinates = [[record.longitude, record.latitude] for record in records if record.located]
    return {
        'type': 'Feature',
        'geometry': {'type': 'LineString', 'coordinates': coordinates},
        'properties': {'pointCount': len(coordinates)},
    }


class JourneyAggregator:
    """Run the whole pipeline over a directory of photos"""

    def __init__(
        self,
        builder: PhotoRecordBuilder,
        home: Coordinate,
        max_workers: int = 8,
        thumbnail_dir: Path | None = None,
        extensions: tuple[str, ...] = IMAGE_EXTENSIONS,
    ):
        self.builder = builder
        self.home = home
        self.max_workers = max(1, max_workers)
        self.thumbnail_dir = thumbnail_dir
        self.extensions = tuple(ext.lower() for ext in extensions)

    def enumerate_images(self, source_dir: Path) -> list[Path]:
        """List candidate images by extension (case-insensitive), sorted by file name"""
        if not source_dir.is_dir():
            raise SourceDirectoryError(f"Source directory not found: {source_dir}")

        try:
            entries = sorted(source_dir.iterdir(), key=lambda path: path.name)
        except OSError as e:
            raise SourceDirectoryError(f"Cannot read source directory {source_dir}: {e}") from e

        images = []
        for path in entries:
            if not path.is_file() or path.suffix.lower() not in self.extensions:
                continue
            # Thumbnails from a previous run can live in the same directory
            if path.name.startswith(THUMBNAIL_PREFIX):
                logger.debug(f"Skipping generated thumbnail {path.name}")
                continue
            images.append(path)

        return images

    def build_records(self, image_paths: list[Path], report: RunReport) -> list[PhotoRecord]:
        """
        Build one record per file concurrently

        Ids come from each file's position in image_paths. Failed builds are
        logged and recorded in the report; they never cancel the others.
        Completion order is arbitrary, so nothing order-dependent happens here.
        """
        records = []
        total = len(image_paths)
        if total == 0:
            return records

        num_workers = min(self.max_workers, total)
        logger.info(f"Processing {total} photos using {num_workers} threads...")

        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            future_to_path = {
                executor.submit(self.builder.build, path, record_id, self.thumbnail_dir): path
                for record_id, path in enumerate(image_paths)
            }

            completed = 0
            for future in as_completed(future_to_path):
                completed += 1
                path = future_to_path[future]

                try:
                    record = future.result()
                except PhotoProcessingError as e:
                    report.skipped.append(SkippedPhoto(file_name=e.file_name, stage=e.stage, reason=e.reason))
                    logger.warning(f"Skipped {e.file_name} [{e.stage}]: {e.reason}")
                    continue

                records.append(record)
                report.succeeded.append(record.file_name)

                if completed % 10 == 0 or completed == total:
                    logger.info(f"Processed {completed}/{total} photos ({completed / total * 100:.1f}%)")
                else:
                    logger.debug(f"Processed {path.name}")

        return records

    def aggregate(self, records: list[PhotoRecord]) -> JourneyAggregate:
        """Derive every aggregate from the complete, unordered record set"""
        ordered = newest_first(records)
        oldest_first = list(reversed(ordered))

        return JourneyAggregate(
            records=tuple(ordered),
            total_distance_traveled=calc_distance_traveled(ordered, self.home),
            altitude_stats=calc_altitude_stats(ordered),
            country_totals=tuple(calc_country_totals(oldest_first)),
            us_state_totals=tuple(calc_us_state_totals(oldest_first)),
            image_points=gen_geojson_points(ordered),
            image_route=gen_geojson_route(oldest_first),
        )

    def process(self, source_dir: Path) -> tuple[JourneyAggregate, RunReport]:
        """Enumerate, build and aggregate every photo in source_dir"""
        image_paths = self.enumerate_images(source_dir)
        report = RunReport(source_dir=str(source_dir), total_files=len(image_paths))

        if not image_paths:
            logger.warning(f"No images found in {source_dir}")

        records = self.build_records(image_paths, report)
        journey = self.aggregate(records)

        logger.info(f"Built {len(report.succeeded)} records, skipped {len(report.skipped)} of {report.total_files} photos")
        logger.info(f"Total distance traveled: {round(journey.total_distance_traveled)} miles")
        logger.info(
            f"Countries: {len(journey.country_totals)}, US states: {len(journey.us_state_totals)}, "
            f"located photos: {len(journey.image_points['features'])}"
        )

        return journey, report
