"""
Circle approximation for radius queries.

Some feature services reject the 'distance' parameter on point queries. The
fallback sends an explicit polygon instead: a regular polygon around the query
point whose vertices sit the requested radius away, with the longitude offset
widened by 1/cos(latitude) so the shape stays roughly circular on the ground.

Functions:
    build_circle_polygon: Shapely polygon approximating a circle in EPSG:4326
    circle_to_esri_polygon: Same circle as ESRI JSON rings
"""

import math
from typing import Dict, Optional

from shapely.geometry import Polygon

from core.models import QueryPoint
from geometry.geometry_converters import shapely_to_esri_polygon
from utils.logger import get_logger

logger = get_logger(__name__)

# Constants
METERS_PER_MILE = 1609.344
METERS_PER_DEGREE = 111320.0
DEFAULT_CIRCLE_VERTICES = 64
# Keeps cos(latitude) away from zero at the poles
MIN_COS_LAT = 1e-6


def build_circle_polygon(
    point: QueryPoint,
    radius_miles: float,
    num_vertices: int = DEFAULT_CIRCLE_VERTICES
) -> Polygon:
    """
    Build a regular polygon approximating a circle around a point.

    Args:
        point: Circle center
        radius_miles: Circle radius in miles (must be positive)
        num_vertices: Number of distinct vertices (default: 64)

    Returns:
        Shapely Polygon in EPSG:4326 (x = longitude, y = latitude)
    """
    if radius_miles <= 0:
        raise ValueError(f"Circle radius must be positive, got {radius_miles} miles")
    if num_vertices < 3:
        raise ValueError(f"A circle needs at least 3 vertices, got {num_vertices}")

    radius_meters = radius_miles * METERS_PER_MILE
    lat_degrees = radius_meters / METERS_PER_DEGREE
    cos_lat = max(math.cos(math.radians(point.lat)), MIN_COS_LAT)
    lon_degrees = radius_meters / (METERS_PER_DEGREE * cos_lat)

    vertices = []
    for i in range(num_vertices):
        angle = (i / num_vertices) * 2 * math.pi
        vertices.append((
            point.lon + lon_degrees * math.sin(angle),
            point.lat + lat_degrees * math.cos(angle)
        ))

    logger.debug(
        f"Circle polygon: {num_vertices} vertices, {radius_miles} mi "
        f"({lat_degrees:.5f}° lat x {lon_degrees:.5f}° lon)"
    )
    return Polygon(vertices)


def circle_to_esri_polygon(
    point: QueryPoint,
    radius_miles: float,
    num_vertices: int = DEFAULT_CIRCLE_VERTICES
) -> Optional[Dict]:
    """Circle from build_circle_polygon as an ESRI JSON polygon (closed ring)."""
    return shapely_to_esri_polygon(build_circle_polygon(point, radius_miles, num_vertices))
