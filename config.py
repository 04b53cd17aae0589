from decouple import config
from pathlib import Path

# Directory paths
INPUT_DIR = Path(config('INPUT_DIR', default='images'))
OUTPUT_DIR = Path(config('OUTPUT_DIR', default='results'))
CACHE_DIR = Path(config('CACHE_DIR', default='data'))
GAZETTEER_DIR = Path(config('GAZETTEER_DIR', default='geocoder-dump'))

# Empty means thumbnails are written alongside the source images
THUMBNAIL_DIR = config('THUMBNAIL_DIR', default='')

# File names
OUTPUT_FILE = config('OUTPUT_FILE', default='images.json')
RUN_REPORT_FILE = 'run_report.json'
GEOCODING_CACHE_FILE = 'geocoding_cache.json'

# GeoNames dump file names used by the offline geocoder
GAZETTEER_CITIES_FILE = 'cities1000.txt'
GAZETTEER_ADMIN1_FILE = 'admin1CodesASCII.txt'
GAZETTEER_ADMIN2_FILE = 'admin2Codes.txt'
GAZETTEER_COUNTRIES_FILE = 'countryInfo.txt'

# Home / reference coordinate (distance from home and seed of the distance fold)
HOME_LONGITUDE = config('HOME_LONGITUDE', default=-77.4360, cast=float)
HOME_LATITUDE = config('HOME_LATITUDE', default=37.5407, cast=float)

# Geocoding
GEOCODER = config('GEOCODER', default='offline')
GEOCODERS = ('offline', 'nominatim', 'google')
GOOGLE_MAPS_API_KEY = config('GOOGLE_MAPS_API_KEY', default='')
NOMINATIM_USER_AGENT = config('NOMINATIM_USER_AGENT', default='photo-journey/1.0')
GEOCODER_TIMEOUT = config('GEOCODER_TIMEOUT', default=10, cast=int)
GEOCODER_MIN_INTERVAL = config('GEOCODER_MIN_INTERVAL', default=1.0, cast=float)
GEOCODING_CACHE_EXPIRATION_DAYS = config('GEOCODING_CACHE_EXPIRATION_DAYS', default=30, cast=int)

# 'fallback' keeps the photo with a placeholder location, 'skip' drops it
GEOCODE_FAILURE_POLICY = config('GEOCODE_FAILURE_POLICY', default='fallback')
GEOCODE_FAILURE_POLICIES = ('fallback', 'skip')

# Concurrency limits
MAX_WORKERS = config('MAX_WORKERS', default=8, cast=int)
MAX_CONCURRENT_GEOCODES = config('MAX_CONCURRENT_GEOCODES', default=4, cast=int)
MAX_CONCURRENT_DECODES = config('MAX_CONCURRENT_DECODES', default=4, cast=int)

# Thumbnails
THUMBNAIL_SIZE = config('THUMBNAIL_SIZE', default=600, cast=int)
THUMBNAIL_QUALITY = config('THUMBNAIL_QUALITY', default=80, cast=int)
THUMBNAIL_FORMAT = config('THUMBNAIL_FORMAT', default='webp')
THUMBNAIL_PREFIX = 'thumb-'

# Source images
IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.tiff', '.heic')

# Unit conversion constants
FEET_PER_METER = 3.28084
MILES_PER_KM = 0.621371
MILES_PER_NAUTICAL_MILE = 1.150779
EARTH_RADIUS_KM = 6371.0

# Validation constants
MIN_VALID_LATITUDE = -90.0
MAX_VALID_LATITUDE = 90.0
MIN_VALID_LONGITUDE = -180.0
MAX_VALID_LONGITUDE = 180.0

# Placeholder values for failed or skipped geocoding
UNKNOWN_COUNTRY_CODE = 'XX'
PLACEHOLDER_FLAG = '\U0001f3f3\ufe0f'
