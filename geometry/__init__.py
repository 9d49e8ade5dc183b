"""
Geometry Package

Pure geometry used by the query engine: containment and distance math on ESRI
coordinate arrays, ESRI JSON validation/conversion, and the circle polygon used
when a service rejects radius queries.

Modules:
    geometry_math: Point-in-polygon and great-circle distance functions
    geometry_converters: ESRI JSON <-> geometry union / GeoJSON / Shapely
    circle: Regular polygon approximating a search radius

Usage:
    from geometry.geometry_math import point_in_polygon, distance_to_polygon_boundary

    inside = point_in_polygon((-122.4, 37.8), feature_rings)
"""

from geometry.geometry_math import (
    haversine,
    point_in_ring,
    point_in_polygon,
    distance_to_point,
    distance_to_segment,
    distance_to_polyline,
    distance_to_polygon_boundary
)

__all__ = [
    'haversine',
    'point_in_ring',
    'point_in_polygon',
    'distance_to_point',
    'distance_to_segment',
    'distance_to_polyline',
    'distance_to_polygon_boundary'
]
