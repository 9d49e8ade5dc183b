"""
Geometry conversion utilities for GeoEnrich.

Feature services return geometries in ESRI JSON format. This module validates
them against the geometry kind a dataset is configured with and turns them into
the engine's geometry union, converts the union back to ESRI JSON or GeoJSON for
callers, and converts Shapely polygons to ESRI JSON for polygon queries.

Functions:
    parse_esri_geometry: Validate ESRI JSON and build a PointGeom/PolylineGeom/PolygonGeom
    geometry_to_esri: Convert a geometry union member back to ESRI JSON
    convert_esri_point: Convert ESRI point geometry to GeoJSON
    convert_esri_linestring: Convert ESRI paths to GeoJSON LineString
    convert_esri_polygon: Convert ESRI rings to GeoJSON Polygon
    geometry_to_geojson_feature: Main dispatcher for geometry union to GeoJSON
    shapely_to_esri_polygon: Convert Shapely Polygon/MultiPolygon to ESRI JSON
"""

import math
from numbers import Real
from typing import Any, Dict, List, Optional

from shapely.geometry.base import BaseGeometry

from core.models import Geometry, GeometryKind, PointGeom, PolygonGeom, PolylineGeom
from utils.logger import get_logger

logger = get_logger(__name__)

WGS84 = {'wkid': 4326}


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _clean_vertices(vertices: Any) -> Optional[List[List[float]]]:
    """Return [[x, y], ...] or None if any vertex is not a numeric pair."""
    if not isinstance(vertices, (list, tuple)):
        return None
    cleaned = []
    for vertex in vertices:
        if not isinstance(vertex, (list, tuple)) or len(vertex) < 2:
            return None
        if not (_is_number(vertex[0]) and _is_number(vertex[1])):
            return None
        # z/m values are dropped
        cleaned.append([float(vertex[0]), float(vertex[1])])
    return cleaned


def parse_esri_geometry(geom: Optional[Dict], kind: GeometryKind) -> Optional[Geometry]:
    """
    Validate an ESRI JSON geometry against the dataset's geometry kind.

    Parameters:
    -----------
    geom : Optional[Dict]
        ESRI geometry ({'x','y'}, {'paths'} or {'rings'})
    kind : GeometryKind
        Geometry kind configured for the dataset

    Returns:
    --------
    Optional[Geometry]
        PointGeom, PolylineGeom or PolygonGeom, or None when the geometry is
        missing or structurally invalid for the kind

    Example:
        >>> parse_esri_geometry({'x': -73.98, 'y': 40.75}, GeometryKind.POINT)
        PointGeom(x=-73.98, y=40.75)
    """
    if not isinstance(geom, dict):
        return None

    if kind == GeometryKind.POINT:
        x, y = geom.get('x'), geom.get('y')
        if not (_is_number(x) and _is_number(y)):
            return None
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        return PointGeom(x=float(x), y=float(y))

    if kind == GeometryKind.POLYLINE:
        raw_paths = geom.get('paths')
        if not isinstance(raw_paths, list) or not raw_paths:
            return None
        paths = []
        for raw_path in raw_paths:
            path = _clean_vertices(raw_path)
            if path is None:
                return None
            if path:
                paths.append(path)
        return PolylineGeom(paths=paths) if paths else None

    if kind == GeometryKind.POLYGON:
        raw_rings = geom.get('rings')
        if not isinstance(raw_rings, list) or not raw_rings:
            return None
        rings = []
        for raw_ring in raw_rings:
            ring = _clean_vertices(raw_ring)
            if ring is None:
                return None
            rings.append(ring)
        # The outer ring must at least form a triangle
        if len(rings[0]) < 3:
            return None
        return PolygonGeom(rings=rings)

    return None


def geometry_to_esri(geometry: Geometry) -> Dict:
    """Convert a geometry union member back to ESRI JSON in EPSG:4326."""
    if isinstance(geometry, PointGeom):
        return {'x': geometry.x, 'y': geometry.y, 'spatialReference': dict(WGS84)}
    if isinstance(geometry, PolylineGeom):
        return {'paths': geometry.paths, 'spatialReference': dict(WGS84)}
    if isinstance(geometry, PolygonGeom):
        return {'rings': geometry.rings, 'spatialReference': dict(WGS84)}
    raise TypeError(f"Unsupported geometry: {type(geometry).__name__}")


def convert_esri_point(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI point geometry to GeoJSON Feature.

    Parameters:
    -----------
    geom : Dict
        ESRI geometry with 'x' and 'y' keys
    props : Dict
        Feature attributes/properties

    Returns:
    --------
    Optional[Dict]
        GeoJSON Feature dict or None if conversion fails
    """
    if not geom or 'x' not in geom or 'y' not in geom:
        return None

    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Point',
            'coordinates': [geom['x'], geom['y']]
        },
        'properties': props
    }


def convert_esri_linestring(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI paths geometry to GeoJSON LineString or MultiLineString.

    Single path becomes LineString, multiple paths become MultiLineString.
    """
    if not geom or 'paths' not in geom or not geom['paths']:
        return None

    if len(geom['paths']) == 1:
        coords = geom['paths'][0]
        geom_type = 'LineString'
    else:
        coords = geom['paths']
        geom_type = 'MultiLineString'

    return {
        'type': 'Feature',
        'geometry': {
            'type': geom_type,
            'coordinates': coords
        },
        'properties': props
    }


def convert_esri_polygon(geom: Dict, props: Dict) -> Optional[Dict]:
    """
    Convert ESRI rings geometry to GeoJSON Polygon.

    The first ring is the exterior, subsequent rings are holes.
    """
    if not geom or 'rings' not in geom or not geom['rings']:
        return None

    return {
        'type': 'Feature',
        'geometry': {
            'type': 'Polygon',
            'coordinates': geom['rings']
        },
        'properties': props
    }


def geometry_to_geojson_feature(geometry: Geometry, props: Dict) -> Optional[Dict]:
    """Dispatch a geometry union member to the matching GeoJSON converter."""
    esri = geometry_to_esri(geometry)
    if isinstance(geometry, PointGeom):
        return convert_esri_point(esri, props)
    if isinstance(geometry, PolylineGeom):
        return convert_esri_linestring(esri, props)
    return convert_esri_polygon(esri, props)


def shapely_to_esri_polygon(geom: BaseGeometry) -> Optional[Dict]:
    """
    Convert Shapely Polygon/MultiPolygon to ESRI JSON polygon format.

    Parameters:
    -----------
    geom : BaseGeometry
        Shapely Polygon or MultiPolygon geometry

    Returns:
    --------
    Optional[Dict]
        ESRI JSON polygon dict with 'rings' and 'spatialReference' keys,
        or None if geometry is empty/unsupported

    Notes:
    ------
    - All rings (exterior and interior) are combined into a single array
    - For MultiPolygon, rings from all component polygons are combined
    - Coordinates are [x, y] format (longitude, latitude)
    """
    if geom is None or geom.is_empty:
        return None

    if geom.geom_type == 'Polygon':
        polygons = [geom]
    elif geom.geom_type == 'MultiPolygon':
        polygons = list(geom.geoms)
    else:
        return None

    rings: List[List[List[float]]] = []
    for polygon in polygons:
        rings.append([[x, y] for x, y in polygon.exterior.coords])
        for interior in polygon.interiors:
            rings.append([[x, y] for x, y in interior.coords])

    return {
        'rings': rings,
        'spatialReference': dict(WGS84)
    }
