"""
Planar and great-circle geometry helpers for GeoEnrich.

Feature services return coordinates as [x, y] = [longitude, latitude] arrays in
EPSG:4326. Containment is tested with even-odd ray casting directly on those
coordinates; distances are great-circle (haversine) miles measured from the
query point to the closest location on a segment, where the closest location
is found by projecting in lon/lat space.

All functions take points as (lon, lat) pairs and never raise on bad input:
empty or non-finite geometry yields False for containment and infinity for
distance.

Functions:
    haversine: Great-circle distance between two (lon, lat) points in miles
    point_in_ring: Even-odd ray casting test for a single ring
    point_in_polygon: Outer ring containment with holes subtracted
    distance_to_point: Distance to a single vertex
    distance_to_segment: Distance to a segment (clamped projection)
    distance_to_polyline: Minimum distance over all paths
    distance_to_polygon_boundary: Minimum distance over all ring edges
"""

import math
from typing import Iterable, Sequence

EARTH_RADIUS_MILES = 3958.8
INF = float('inf')

Coord = Sequence[float]


def _finite(*values: float) -> bool:
    try:
        return all(math.isfinite(v) for v in values)
    except TypeError:
        return False


def _coord(vertex) -> tuple:
    """Return (x, y) as floats, or (nan, nan) when the vertex is unusable."""
    try:
        return float(vertex[0]), float(vertex[1])
    except (TypeError, ValueError, IndexError):
        return math.nan, math.nan


def haversine(p1: Coord, p2: Coord) -> float:
    """
    Great-circle distance between two (lon, lat) points.

    Parameters:
    -----------
    p1, p2 : Sequence[float]
        Points as (longitude, latitude) in decimal degrees

    Returns:
    --------
    float
        Distance in miles, or infinity if either point is not finite

    Example:
        >>> round(haversine((0, 0), (1, 0)), 1)
        69.1
    """
    lon1, lat1 = _coord(p1)
    lon2, lat2 = _coord(p2)
    if not _finite(lon1, lat1, lon2, lat2):
        return INF

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    # Clamp against floating point drift above 1.0
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def point_in_ring(point: Coord, ring: Sequence[Coord]) -> bool:
    """
    Even-odd ray casting test of a point against one ring.

    The ring may be open or closed (first vertex repeated at the end); the
    closing edge is implied either way.
    """
    px, py = _coord(point)
    if not _finite(px, py) or not ring or len(ring) < 3:
        return False

    inside = False
    n = len(ring)
    j = n - 1
    for i in range(n):
        xi, yi = _coord(ring[i])
        xj, yj = _coord(ring[j])
        if not _finite(xi, yi, xj, yj):
            return False
        if (yi > py) != (yj > py):
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            if px < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_polygon(point: Coord, rings: Sequence[Sequence[Coord]]) -> bool:
    """
    Test a point against a polygon given as ESRI rings.

    rings[0] is the outer boundary, every later ring is a hole. The point is
    inside when it falls in the outer ring and in none of the holes.
    """
    if not rings:
        return False
    if not point_in_ring(point, rings[0]):
        return False
    return not any(point_in_ring(point, hole) for hole in rings[1:])


def distance_to_point(point: Coord, other: Coord) -> float:
    return haversine(point, other)


def distance_to_segment(point: Coord, a: Coord, b: Coord) -> float:
    """
    Distance in miles from a point to the segment a-b.

    The projection parameter t is computed in lon/lat space and clamped to
    [0, 1]; the haversine distance to the projected location is returned. A
    degenerate segment (a == b) is a point-to-point distance.
    """
    px, py = _coord(point)
    ax, ay = _coord(a)
    bx, by = _coord(b)
    if not _finite(px, py, ax, ay, bx, by):
        return INF

    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return haversine((px, py), (ax, ay))

    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return haversine((px, py), (ax + t * dx, ay + t * dy))


def _min_over_edges(point: Coord, vertices: Sequence[Coord], closed: bool) -> float:
    if not vertices:
        return INF
    if len(vertices) == 1:
        return distance_to_point(point, vertices[0])

    best = INF
    for i in range(len(vertices) - 1):
        best = min(best, distance_to_segment(point, vertices[i], vertices[i + 1]))
    if closed and _coord(vertices[0]) != _coord(vertices[-1]):
        best = min(best, distance_to_segment(point, vertices[-1], vertices[0]))
    return best


def distance_to_polyline(point: Coord, paths: Iterable[Sequence[Coord]]) -> float:
    """Minimum distance over every consecutive-vertex segment of every path."""
    best = INF
    for path in paths or []:
        best = min(best, _min_over_edges(point, path, closed=False))
    return best


def distance_to_polygon_boundary(point: Coord, rings: Iterable[Sequence[Coord]]) -> float:
    """
    Minimum distance to any edge of any ring.

    Holes are boundaries too, so a point sitting inside a hole measures to the
    nearest hole edge. Rings that are not explicitly closed get their closing
    edge.
    """
    best = INF
    for ring in rings or []:
        best = min(best, _min_over_edges(point, ring, closed=True))
    return best
