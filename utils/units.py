from config import EARTH_RADIUS_KM, FEET_PER_METER, MILES_PER_KM, MILES_PER_NAUTICAL_MILE
from geopy.distance import great_circle


def meters_to_feet(meters: float) -> int:
    """Convert meters to feet, rounded to the nearest integer"""
    return round(meters * FEET_PER_METER)


def kmh_to_mph(kmh: float) -> float:
    return kmh * MILES_PER_KM


def knots_to_mph(knots: float) -> float:
    return knots * MILES_PER_NAUTICAL_MILE


def km_to_miles(km: float) -> float:
    return km * MILES_PER_KM


def haversine_km(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance between two points on a sphere of radius EARTH_RADIUS_KM, in kilometers"""
    # geopy points are (latitude, longitude)
    return great_circle((lat1, lon1), (lat2, lon2), radius=EARTH_RADIUS_KM).km


def haversine_miles(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance in miles; arguments are (longitude, latitude) pairs"""
    return km_to_miles(haversine_km(lon1, lat1, lon2, lat2))
