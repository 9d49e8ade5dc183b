"""
Query parameter construction for ESRI feature-service 'query' operations.

Builds the two request specs the engine issues per dataset:
1. Containment: the query point, no distance (which features contain the point)
2. Proximity: the query point buffered server-side by the radius in meters

plus a polygon spec used when a service rejects the distance parameter.
Pagination parameters are left at offset 0; the paginated fetcher fills them
in per page.

Functions:
    build_containment_spec: Parameters for the containment leg
    build_proximity_spec: Parameters for the proximity (buffered) leg
    build_polygon_spec: Parameters for a polygon-intersects query
    with_spatial_rel: Copy of a spec using another spatial relation
"""

import json
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from core.models import QueryPoint, ServiceDescriptor

METERS_PER_MILE = 1609.344
DEFAULT_BATCH_SIZE = 2000

# Spatial relations
INTERSECTS = 'esriSpatialRelIntersects'
CONTAINS = 'esriSpatialRelContains'
WITHIN = 'esriSpatialRelWithin'

GEOMETRY_POINT = 'esriGeometryPoint'
GEOMETRY_POLYGON = 'esriGeometryPolygon'
UNITS_METER = 'esriSRUnit_Meter'


@dataclass(frozen=True)
class QuerySpec:
    """
    One remote query, independent of which page is being requested.

    geometry is kept as a dict so fallbacks can inspect it; params() serializes
    it to the JSON string the REST API expects.
    """

    url: str
    geometry: Dict
    geometry_type: str
    spatial_rel: str
    distance_meters: Optional[float] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    offset: int = 0
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def uses_distance(self) -> bool:
        return self.distance_meters is not None

    def page(self, offset: int) -> 'QuerySpec':
        return replace(self, offset=offset)

    def params(self) -> Dict[str, str]:
        """Form parameters for the request, ready for requests.post(data=...)."""
        params = {
            'f': 'json',
            'where': '1=1',
            'outFields': '*',
            'geometry': json.dumps(self.geometry),
            'geometryType': self.geometry_type,
            'spatialRel': self.spatial_rel,
            'inSR': '4326',
            'outSR': '4326',
            'returnGeometry': 'true',
            'resultRecordCount': str(self.batch_size),
            'resultOffset': str(self.offset),
        }
        if self.distance_meters is not None:
            params['distance'] = repr(float(self.distance_meters))
            params['units'] = UNITS_METER
        params.update(self.extra)
        return params


def point_geometry(point: QueryPoint) -> Dict:
    return {'x': point.lon, 'y': point.lat, 'spatialReference': {'wkid': 4326}}


def build_containment_spec(
    point: QueryPoint,
    descriptor: ServiceDescriptor,
    batch_size: int = DEFAULT_BATCH_SIZE
) -> QuerySpec:
    """
    Build the containment query for a dataset.

    Uses Contains when the service advertises support for it, Intersects
    otherwise. No distance parameter is sent.
    """
    spatial_rel = CONTAINS if descriptor.supports_contains_operator else INTERSECTS
    return QuerySpec(
        url=descriptor.query_url,
        geometry=point_geometry(point),
        geometry_type=GEOMETRY_POINT,
        spatial_rel=spatial_rel,
        batch_size=batch_size
    )


def build_proximity_spec(
    point: QueryPoint,
    radius_miles: float,
    descriptor: ServiceDescriptor,
    batch_size: int = DEFAULT_BATCH_SIZE
) -> QuerySpec:
    """
    Build the proximity query: point geometry buffered by the radius in meters.

    Parameters:
    -----------
    point : QueryPoint
        Query center
    radius_miles : float
        Effective radius in miles (already capped by the descriptor)
    descriptor : ServiceDescriptor
        Target dataset
    batch_size : int
        Records requested per page

    Returns:
    --------
    QuerySpec
        Intersects query with distance/units set
    """
    return QuerySpec(
        url=descriptor.query_url,
        geometry=point_geometry(point),
        geometry_type=GEOMETRY_POINT,
        spatial_rel=INTERSECTS,
        distance_meters=radius_miles * METERS_PER_MILE,
        batch_size=batch_size
    )


def build_polygon_spec(url: str, esri_polygon: Dict, batch_size: int = DEFAULT_BATCH_SIZE) -> QuerySpec:
    return QuerySpec(
        url=url,
        geometry=esri_polygon,
        geometry_type=GEOMETRY_POLYGON,
        spatial_rel=INTERSECTS,
        batch_size=batch_size
    )


def with_spatial_rel(spec: QuerySpec, spatial_rel: str) -> QuerySpec:
    return replace(spec, spatial_rel=spatial_rel, offset=0)
