import math

EARTH_RADIUS_M = 6_371_000.0
PROXIMITY_RADIUS_M = 500.0
# float rounding slack for the inclusive boundary
BOUNDARY_TOLERANCE_M = 1e-6


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters on a spherical earth."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    # clamp: float error can push a a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


def is_within_proximity(
    a_lat: float,
    a_lng: float,
    b_lat: float,
    b_lng: float,
    radius_m: float = PROXIMITY_RADIUS_M,
) -> bool:
    # Inclusive boundary: exactly radius_m away is admissible
    return haversine_m(a_lat, a_lng, b_lat, b_lng) <= radius_m + BOUNDARY_TOLERANCE_M
