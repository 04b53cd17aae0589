#!/usr/bin/env python

"""
Photo Journey - Geotagged Photo Processor

Reads a directory of geotagged photos and produces a single JSON document with
per-photo metadata, reverse-geocoded place names, thumbnails, and journey
aggregates (distance traveled, countries, US states, altitude, GeoJSON).

Usage:
    main.py [command] [options]

    Default command is 'process-photos' if none specified.

Commands:
    process-photos: Extract, geocode and thumbnail every photo, then write the journey document (default)
    cache-stats: Display geocoding cache statistics and clean expired entries
    cache-clear: Clear all geocoding cache entries

Options:
    --dry-run: List the photos that would be processed without writing anything
    --verbose: Enable verbose logging output
    --input-dir: Directory of source photos (default: images)
    --output-dir: Directory for the journey document (default: results)
    --thumbnail-dir: Directory for thumbnails (default: alongside the photos)
    --geocoder: offline, nominatim or google (default: offline)
    --workers: Number of photos processed in parallel
"""

import argparse
import logging
import sys
import threading
from config import (
    CACHE_DIR,
    GAZETTEER_DIR,
    GEOCODE_FAILURE_POLICIES,
    GEOCODE_FAILURE_POLICY,
    GEOCODER,
    GEOCODER_MIN_INTERVAL,
    GEOCODER_TIMEOUT,
    GEOCODERS,
    GEOCODING_CACHE_EXPIRATION_DAYS,
    GEOCODING_CACHE_FILE,
    GOOGLE_MAPS_API_KEY,
    HOME_LATITUDE,
    HOME_LONGITUDE,
    INPUT_DIR,
    MAX_CONCURRENT_DECODES,
    MAX_CONCURRENT_GEOCODES,
    MAX_WORKERS,
    NOMINATIM_USER_AGENT,
    OUTPUT_DIR,
    OUTPUT_FILE,
    RUN_REPORT_FILE,
    THUMBNAIL_DIR,
    THUMBNAIL_FORMAT,
    THUMBNAIL_QUALITY,
    THUMBNAIL_SIZE,
)
from core.errors import RunError
from core.exif import MetadataExtractor
from core.exporter import JourneyExporter
from core.journey import JourneyAggregator
from core.models import Coordinate
from core.records import PhotoRecordBuilder
from core.thumbnails import ThumbnailGenerator
from pathlib import Path
from utils.geocoding import GeocodingCache, build_geocoder

logger = logging.getLogger(__name__)


class PhotoJourneyPipeline:
    """Wire the extractor, geocoder, thumbnailer, aggregator and exporter together"""

    def __init__(
        self,
        input_dir: Path = INPUT_DIR,
        output_dir: Path = OUTPUT_DIR,
        thumbnail_dir: Path | None = None,
        geocoder_kind: str = GEOCODER,
        home: Coordinate = Coordinate(longitude=HOME_LONGITUDE, latitude=HOME_LATITUDE),
        max_workers: int = MAX_WORKERS,
        geocode_failure_policy: str = GEOCODE_FAILURE_POLICY,
        dry_run: bool = False,
        geocoder=None,
    ):
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.thumbnail_dir = thumbnail_dir
        self.dry_run = dry_run

        if geocoder is None:
            cache = GeocodingCache(CACHE_DIR / GEOCODING_CACHE_FILE, GEOCODING_CACHE_EXPIRATION_DAYS)
            geocoder = build_geocoder(
                geocoder_kind,
                gazetteer_dir=GAZETTEER_DIR,
                google_api_key=GOOGLE_MAPS_API_KEY,
                user_agent=NOMINATIM_USER_AGENT,
                timeout=GEOCODER_TIMEOUT,
                min_api_interval=GEOCODER_MIN_INTERVAL,
                cache=cache,
            )

        builder = PhotoRecordBuilder(
            extractor=MetadataExtractor(),
            geocoder=geocoder,
            thumbnails=ThumbnailGenerator(size=THUMBNAIL_SIZE, quality=THUMBNAIL_QUALITY, image_format=THUMBNAIL_FORMAT),
            home=home,
            geocode_failure_policy=geocode_failure_policy,
            geocode_slots=threading.BoundedSemaphore(MAX_CONCURRENT_GEOCODES),
            decode_slots=threading.BoundedSemaphore(MAX_CONCURRENT_DECODES),
        )
        self.aggregator = JourneyAggregator(builder, home=home, max_workers=max_workers, thumbnail_dir=thumbnail_dir)
        self.exporter = JourneyExporter(output_dir)

    def run(self) -> bool:
        """Execute the complete run; False means nothing durable was produced"""
        logger.info(f"Starting photo journey run over {self.input_dir}")

        try:
            if self.dry_run:
                images = self.aggregator.enumerate_images(self.input_dir)
                logger.info(f"DRY RUN: Would process {len(images)} photos")
                for image in images:
                    logger.info(f"  - {image.name}")
                return True

            journey, report = self.aggregator.process(self.input_dir)
            self.exporter.export(journey, OUTPUT_FILE)
            self.exporter.export_report(report, RUN_REPORT_FILE)
        except RunError as e:
            logger.error(f"Run failed at stage '{e.stage}': {e.message}")
            return False

        for skip in report.skipped:
            logger.warning(f"  - {skip.file_name} [{skip.stage}]: {skip.reason}")
        logger.info(f"Run complete: {len(report.succeeded)} succeeded, {len(report.skipped)} skipped")

        return True


def parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Photo Journey - Geotagged Photo Processor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument('command', nargs='?', default='process-photos', help='Command to execute (default: process-photos)')
    parser.add_argument('--dry-run', action='store_true', help='List photos that would be processed without writing anything')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging output')
    parser.add_argument('--input-dir', type=Path, default=INPUT_DIR, help='Directory of source photos')
    parser.add_argument('--output-dir', type=Path, default=OUTPUT_DIR, help='Directory for the journey document')
    parser.add_argument(
        '--thumbnail-dir', type=Path, default=Path(THUMBNAIL_DIR) if THUMBNAIL_DIR else None, help='Directory for thumbnails'
    )
    parser.add_argument('--geocoder', choices=GEOCODERS, default=GEOCODER, help='Reverse geocoder implementation')
    parser.add_argument(
        '--geocode-failure-policy',
        choices=GEOCODE_FAILURE_POLICIES,
        default=GEOCODE_FAILURE_POLICY,
        help='Keep photos with a placeholder location (fallback) or drop them (skip) when geocoding fails',
    )
    parser.add_argument('--workers', type=int, default=MAX_WORKERS, help='Number of photos processed in parallel')

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s', force=True)


def main(argv=None):
    args = parse_arguments(argv)

    setup_logging(args.verbose)

    command = args.command

    if command == "process-photos":
        pipeline = PhotoJourneyPipeline(
            input_dir=args.input_dir,
            output_dir=args.output_dir,
            thumbnail_dir=args.thumbnail_dir,
            geocoder_kind=args.geocoder,
            max_workers=args.workers,
            geocode_failure_policy=args.geocode_failure_policy,
            dry_run=args.dry_run,
        )
        success = pipeline.run()
        sys.exit(0 if success else 1)

    elif command == "cache-stats":
        cache = GeocodingCache(CACHE_DIR / GEOCODING_CACHE_FILE, GEOCODING_CACHE_EXPIRATION_DAYS)
        stats = cache.get_stats()

        print("\n=== Geocoding Cache Statistics ===")
        print(f"Total entries: {stats['total_entries']}")
        print(f"Cache hits: {stats['cache_hits']}")
        print(f"Cache misses: {stats['cache_misses']}")
        print(f"Hit ratio: {stats['hit_ratio_percent']}%")
        print(f"Expiration: {stats['expiration_days']} days")
        print(f"Created: {stats['created']}")
        print(f"Last updated: {stats['last_updated']}")

        expired_count = cache.clean_expired()
        if expired_count > 0:
            print(f"Cleaned {expired_count} expired entries")

        sys.exit(0)

    elif command == "cache-clear":
        cache = GeocodingCache(CACHE_DIR / GEOCODING_CACHE_FILE, GEOCODING_CACHE_EXPIRATION_DAYS)
        cache.clear()
        print("Cache cleared successfully")
        sys.exit(0)

    else:
        print(__doc__.strip())


if __name__ == "__main__":
    main()
