import json
import pytest
from core.errors import ExportError, ImageDecodeError, MissingMetadataError, SourceDirectoryError
from core.exporter import JourneyExporter
from core.journey import (
    JourneyAggregator,
    calc_altitude_stats,
    calc_country_totals,
    calc_distance_traveled,
    calc_us_state_totals,
    chronological,
    gen_geojson_points,
    gen_geojson_route,
    newest_first,
)
from core.models import CaptureMetadata, Coordinate, GeocodeResult, RunReport, SkippedPhoto
from core.records import PhotoRecordBuilder
from datetime import timedelta
from fixtures import (
    BASE_TIME,
    HOME,
    NEW_YORK,
    PARIS,
    WASHINGTON,
    StubExtractor,
    StubGeocoder,
    StubThumbnails,
    make_geocode,
    make_image,
    make_record,
)
from utils.units import haversine_miles

HOME_COORD = Coordinate(longitude=HOME[0], latitude=HOME[1])


def metadata_at(hours, coords=None, altitude=None) -> CaptureMetadata:
    longitude, latitude = coords if coords else (None, None)
    return CaptureMetadata(
        timestamp=BASE_TIME + timedelta(hours=hours), longitude=longitude, latitude=latitude, altitude_feet=altitude
    )


class TestOrdering:
    """Test suite for record ordering"""

    def test_newest_first(self):
        records = [make_record(0, hours=2), make_record(1, hours=0), make_record(2, hours=1)]
        assert [record.id for record in newest_first(records)] == [0, 2, 1]

    def test_equal_timestamps_fall_back_to_id(self):
        records = [make_record(2), make_record(0), make_record(1)]
        assert [record.id for record in chronological(records)] == [0, 1, 2]
        assert [record.id for record in newest_first(records)] == [2, 1, 0]


class TestDistanceTraveled:
    """Test suite for the distance fold"""

    def test_no_records(self):
        assert calc_distance_traveled([], HOME_COORD) == 0

    def test_first_leg_starts_at_home(self):
        records = [make_record(0, coords=WASHINGTON)]
        assert calc_distance_traveled(records, HOME_COORD) == pytest.approx(haversine_miles(*HOME, *WASHINGTON))

    def test_legs_follow_chronological_order(self):
        oldest_first = [make_record(0, 0, WASHINGTON), make_record(1, 1, NEW_YORK), make_record(2, 2, PARIS)]
        expected = (
            haversine_miles(*HOME, *WASHINGTON)
            + haversine_miles(*WASHINGTON, *NEW_YORK)
            + haversine_miles(*NEW_YORK, *PARIS)
        )

        assert calc_distance_traveled(newest_first(oldest_first), HOME_COORD) == pytest.approx(expected)

    def test_unlocated_records_are_bridged(self):
        records = [make_record(0, 0, WASHINGTON), make_record(1, 1, None), make_record(2, 2, PARIS)]
        expected = haversine_miles(*HOME, *WASHINGTON) + haversine_miles(*WASHINGTON, *PARIS)

        assert calc_distance_traveled(newest_first(records), HOME_COORD) == pytest.approx(expected)

    def test_only_unlocated_records(self):
        records = [make_record(0, 0, None), make_record(1, 1, None)]
        assert calc_distance_traveled(newest_first(records), HOME_COORD) == 0


class TestAggregates:
    """Test suite for order-independent aggregates"""

    def test_altitude_stats(self):
        records = [make_record(0, altitude=100), make_record(1, altitude=-20), make_record(2, altitude=0), make_record(3)]

        stats = calc_altitude_stats(records)

        assert stats.min == -20
        assert stats.max == 100
        assert stats.average == 27

    def test_altitude_stats_without_data(self):
        stats = calc_altitude_stats([make_record(0), make_record(1)])
        assert (stats.min, stats.max, stats.average) == (0, 0, 0)

    def test_country_totals_first_occurrence(self):
        france = make_geocode('Paris', 'FR', 'France', 'Île-de-France')
        lyon = GeocodeResult(name='Lyon', country_code='FR', country_name='République française', flag='?')
        records = [
            make_record(0),
            make_record(1, geocode=france),
            make_record(2, geocode=lyon),
            make_record(3, geocode=make_geocode('Arlington')),
        ]

        totals = calc_country_totals(records)

        assert [country.country_code for country in totals] == ['US', 'FR']
        assert totals[1].country_name == 'France'
        assert totals[1].flag == '\U0001f1eb\U0001f1f7'

    def test_country_totals_exclude_placeholder(self):
        records = [make_record(0, geocode=GeocodeResult.placeholder()), make_record(1)]
        assert [country.country_code for country in calc_country_totals(records)] == ['US']

    def test_us_state_totals(self):
        records = [
            make_record(0, geocode=make_geocode('Richmond', admin1='Virginia')),
            make_record(1, geocode=make_geocode('Washington', admin1='District of Columbia')),
            make_record(2, geocode=make_geocode('Norfolk', admin1='Virginia')),
            make_record(3, geocode=make_geocode('Nowhere', admin1='')),
            make_record(4, geocode=make_geocode('Paris', 'FR', 'France', 'Île-de-France')),
        ]

        assert calc_us_state_totals(records) == ['Virginia', 'District of Columbia']


class TestGeoJSON:
    """Test suite for GeoJSON generation"""

    def test_points_skip_unlocated_records(self):
        records = [make_record(0, coords=PARIS), make_record(1, coords=None)]

        points = gen_geojson_points(records)

        assert points['type'] == 'FeatureCollection'
        assert len(points['features']) == 1
        feature = points['features'][0]
        assert feature['geometry'] == {'type': 'Point', 'coordinates': [PARIS[0], PARIS[1]]}
        assert feature['properties']['id'] == 0
        assert feature['properties']['title'] == 'Richmond, Virginia'
        assert feature['properties']['imageThumb'] == 'thumb-IMG_0000.webp'

    def test_empty_points(self):
        assert gen_geojson_points([]) == {'type': 'FeatureCollection', 'features': []}

    def test_route(self):
        records = chronological([make_record(0, 1, PARIS), make_record(1, 0, WASHINGTON), make_record(2, 2, None)])

        route = gen_geojson_route(records)

        assert route['geometry']['type'] == 'LineString'
        assert route['geometry']['coordinates'] == [list(WASHINGTON), list(PARIS)]
        assert route['properties']['pointCount'] == 2


class TestJourneyAggregator:
    """Test suite for JourneyAggregator"""

    def make_aggregator(self, metadata_by_name, geocoder=None, max_workers=4, policy='fallback'):
        builder = PhotoRecordBuilder(
            extractor=StubExtractor(metadata_by_name),
            geocoder=geocoder or StubGeocoder(),
            thumbnails=StubThumbnails(),
            home=HOME_COORD,
            geocode_failure_policy=policy,
        )
        return JourneyAggregator(builder, home=HOME_COORD, max_workers=max_workers)

    def make_photos(self, directory, names):
        # Extraction is stubbed, so the files only need to exist
        for name in names:
            (directory / name).write_bytes(b"photo")

    def test_enumerate_images(self, tmp_path):
        self.make_photos(tmp_path, ["b.JPG", "a.jpeg", "c.png", "d.HEIC", "thumb-a.webp", "thumb-b.jpg"])
        (tmp_path / "notes.txt").write_text("not a photo")
        (tmp_path / "nested.jpg").mkdir()

        images = self.make_aggregator({}).enumerate_images(tmp_path)

        assert [path.name for path in images] == ["a.jpeg", "b.JPG", "c.png", "d.HEIC"]

    def test_enumerate_missing_directory(self, tmp_path):
        with pytest.raises(SourceDirectoryError) as exc_info:
            self.make_aggregator({}).enumerate_images(tmp_path / "missing")

        assert exc_info.value.stage == 'enumerate'

    def test_journey_with_unlocated_photo(self, tmp_path):
        """Three photos where the middle one has no GPS: it is listed but bridged over"""
        self.make_photos(tmp_path, ["A.jpg", "B.jpg", "C.jpg"])
        metadata = {
            "A.jpg": metadata_at(1, WASHINGTON, altitude=50),
            "B.jpg": metadata_at(2),
            "C.jpg": metadata_at(3, NEW_YORK, altitude=30),
        }
        geocoder = StubGeocoder({
            WASHINGTON: make_geocode('Washington', admin1='District of Columbia'),
            NEW_YORK: make_geocode('New York', admin1='New York'),
        })

        journey, report = self.make_aggregator(metadata, geocoder).process(tmp_path)

        assert [record.file_name for record in journey.records] == ["C.jpg", "B.jpg", "A.jpg"]
        assert journey.total_distance_traveled == pytest.approx(
            haversine_miles(*HOME, *WASHINGTON) + haversine_miles(*WASHINGTON, *NEW_YORK)
        )
        assert len(journey.image_points['features']) == 2
        assert journey.us_state_totals == ('District of Columbia', 'New York')
        assert [country.country_code for country in journey.country_totals] == ['US']
        assert (journey.altitude_stats.min, journey.altitude_stats.max, journey.altitude_stats.average) == (30, 50, 40)

        document = journey.to_document()
        unlocated = next(image for image in document['images'] if image['image'] == "B.jpg")
        assert 'altitude' not in unlocated
        assert 'latitude' not in unlocated
        assert 'distance' not in unlocated

        assert report.total_files == 3
        assert sorted(report.succeeded) == ["A.jpg", "B.jpg", "C.jpg"]
        assert report.skipped == []

    def test_failed_photos_are_reported_not_fatal(self, tmp_path):
        self.make_photos(tmp_path, ["good.jpg", "no_date.jpg", "broken.jpg"])
        metadata = {
            "good.jpg": metadata_at(0, PARIS),
            "no_date.jpg": MissingMetadataError("no_date.jpg", "missing DateTimeOriginal capture timestamp"),
            "broken.jpg": ImageDecodeError("broken.jpg", "cannot decode image"),
        }
        geocoder = StubGeocoder({PARIS: make_geocode('Paris', 'FR', 'France', 'Île-de-France')})

        journey, report = self.make_aggregator(metadata, geocoder).process(tmp_path)

        assert [record.file_name for record in journey.records] == ["good.jpg"]
        assert report.succeeded == ["good.jpg"]
        skipped = {skip.file_name: skip.stage for skip in report.skipped}
        assert skipped == {"no_date.jpg": 'metadata', "broken.jpg": 'decode'}

    def test_geocode_skip_policy_drops_photo(self, tmp_path):
        self.make_photos(tmp_path, ["a.jpg", "b.jpg"])
        metadata = {"a.jpg": metadata_at(0, PARIS), "b.jpg": metadata_at(1)}

        journey, report = self.make_aggregator(metadata, StubGeocoder(fail=True), policy='skip').process(tmp_path)

        assert [record.file_name for record in journey.records] == ["b.jpg"]
        assert [(skip.file_name, skip.stage) for skip in report.skipped] == [("a.jpg", 'geocode')]

    def test_ids_are_distinct_and_follow_enumeration(self, tmp_path):
        names = [f"IMG_{index:04d}.jpg" for index in range(12)]
        self.make_photos(tmp_path, names)
        # Capture times run backwards relative to file names
        metadata = {name: metadata_at(12 - index, WASHINGTON) for index, name in enumerate(names)}

        journey, _ = self.make_aggregator(metadata).process(tmp_path)

        ids = {record.file_name: record.id for record in journey.records}
        assert len(set(ids.values())) == len(names)
        assert ids == {name: index for index, name in enumerate(names)}

    def test_result_does_not_depend_on_worker_count(self, tmp_path):
        places = [WASHINGTON, NEW_YORK, PARIS, HOME]
        names = [f"IMG_{index:04d}.jpg" for index in range(16)]
        self.make_photos(tmp_path, names)
        metadata = {
            name: metadata_at(index * 0.5, places[index % len(places)] if index % 5 else None, altitude=index * 10)
            for index, name in enumerate(names)
        }
        geocoder = StubGeocoder({
            WASHINGTON: make_geocode('Washington', admin1='District of Columbia'),
            NEW_YORK: make_geocode('New York', admin1='New York'),
            PARIS: make_geocode('Paris', 'FR', 'France', 'Île-de-France'),
            HOME: make_geocode(),
        })

        serial, _ = self.make_aggregator(metadata, geocoder, max_workers=1).process(tmp_path)
        parallel, _ = self.make_aggregator(metadata, geocoder, max_workers=8).process(tmp_path)

        assert serial.total_distance_traveled == pytest.approx(parallel.total_distance_traveled)
        assert serial.to_document() == parallel.to_document()

    def test_empty_directory(self, tmp_path):
        journey, report = self.make_aggregator({}).process(tmp_path)

        assert journey.records == ()
        assert journey.total_distance_traveled == 0
        assert journey.image_points['features'] == []
        assert report.total_files == 0


class TestJourneyExporter:
    """Test suite for JourneyExporter"""

    @pytest.fixture
    def journey(self, tmp_path):
        builder = PhotoRecordBuilder(
            extractor=StubExtractor({"a.jpg": metadata_at(0, PARIS, altitude=115)}),
            geocoder=StubGeocoder({PARIS: make_geocode('Paris', 'FR', 'France', 'Île-de-France')}),
            thumbnails=StubThumbnails(),
            home=HOME_COORD,
        )
        source_dir = tmp_path / "photos"
        make_image(source_dir / "a.jpg")
        journey, _ = JourneyAggregator(builder, home=HOME_COORD).process(source_dir)
        return journey

    def test_export_document(self, tmp_path, journey):
        output_file = JourneyExporter(tmp_path / "results").export(journey, "images.json")

        with open(output_file, encoding='utf-8') as f:
            document = json.load(f)

        assert set(document) == {
            'images',
            'altitudeStats',
            'countryTotals',
            'usTotals',
            'distanceTraveled',
            'imagesPoints',
            'imagesRoute',
        }
        image = document['images'][0]
        assert image['image'] == "a.jpg"
        assert image['imageThumb'] == "thumb-a.webp"
        assert image['formattedName'] == 'Paris, France'
        assert image['timestamp'] == BASE_TIME.isoformat()
        assert document['countryTotals'] == [{'countryCode': 'FR', 'countryName': 'France', 'flag': '\U0001f1eb\U0001f1f7'}]
        assert document['usTotals'] == []
        assert document['altitudeStats'] == {'min': 115, 'max': 115, 'average': 115}
        assert not list((tmp_path / "results").glob("*.tmp"))

    def test_export_report(self, tmp_path):
        report = RunReport(source_dir="photos", total_files=2, succeeded=["a.jpg"])
        report.skipped.append(SkippedPhoto("b.jpg", "metadata", "missing DateTimeOriginal capture timestamp"))

        report_file = JourneyExporter(tmp_path).export_report(report, "run_report.json")

        with open(report_file, encoding='utf-8') as f:
            data = json.load(f)
        assert data['succeeded'] == 1
        assert data['skipped'] == 1
        assert data['skipped_photos'][0]['file'] == "b.jpg"
        assert data['skipped_photos'][0]['stage'] == 'metadata'

    def test_unwritable_output(self, tmp_path, journey):
        blocker = tmp_path / "results"
        blocker.write_text("a file where the directory should be")

        with pytest.raises(ExportError) as exc_info:
            JourneyExporter(blocker).export(journey, "images.json")

        assert exc_info.value.stage == 'export'
