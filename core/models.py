"""
Data model for GeoEnrich.

Dataclasses shared by the query engine: the per-dataset service descriptor,
the validated query point, the tagged geometry union returned by feature
services, and the enriched feature records handed back to callers.

Classes:
    InvalidArgumentError: Raised for malformed points or radii
    GeometryKind: Geometry type served by a dataset
    ServiceDescriptor: Immutable configuration for one remote dataset
    QueryPoint: Validated latitude/longitude pair
    PointGeom, PolylineGeom, PolygonGeom: Geometry union members
    RawFeature: One record from a query response
    EnrichedFeature: Normalized, distance-tagged feature
    LegResult: Features and bookkeeping for one query leg
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

DEFAULT_ID_CANDIDATES = ('OBJECTID', 'objectid', 'OBJECTID_1', 'FID', 'GlobalID')


class InvalidArgumentError(ValueError):
    """Malformed query point or radius."""


class GeometryKind(str, Enum):
    POINT = 'Point'
    POLYLINE = 'Polyline'
    POLYGON = 'Polygon'

    @classmethod
    def parse(cls, value: str) -> 'GeometryKind':
        """Accept 'Polygon', 'polygon' or 'esriGeometryPolygon' style names."""
        text = str(value).strip()
        if text.startswith('esriGeometry'):
            text = text[len('esriGeometry'):]
        for kind in cls:
            if kind.value.lower() == text.lower():
                return kind
        # 'line' is what the layer configs of the map tool call polylines
        if text.lower() == 'line':
            return cls.POLYLINE
        raise ValueError(f"Unknown geometry kind: {value!r}")


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Immutable configuration for one remote feature-service layer.

    field_candidates maps a canonical field name to the ordered attribute keys
    that may hold it. The 'id' field falls back to DEFAULT_ID_CANDIDATES.
    """

    base_url: str
    layer_id: int
    geometry_kind: GeometryKind
    max_radius_miles: float
    supports_contains_operator: bool = False
    name: str = ''
    field_candidates: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    enabled: bool = True

    @property
    def layer_name(self) -> str:
        return self.name or f"Layer {self.layer_id}"

    @property
    def query_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.layer_id}/query"

    @property
    def is_feature_server(self) -> bool:
        return '/FeatureServer' in self.base_url

    @property
    def id_candidates(self) -> Tuple[str, ...]:
        return tuple(self.field_candidates.get('id') or DEFAULT_ID_CANDIDATES)

    def effective_radius(self, radius_miles: float) -> float:
        return min(radius_miles, self.max_radius_miles)


@dataclass(frozen=True)
class QueryPoint:
    lat: float
    lon: float

    @classmethod
    def create(cls, lat: float, lon: float) -> 'QueryPoint':
        """Validate and build a point, raising InvalidArgumentError when out of range."""
        try:
            lat = float(lat)
            lon = float(lon)
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"Coordinates must be numeric, got ({lat!r}, {lon!r})")

        if math.isnan(lat) or not -90.0 <= lat <= 90.0:
            raise InvalidArgumentError(f"Latitude must be within [-90, 90], got {lat}")
        if math.isnan(lon) or not -180.0 <= lon <= 180.0:
            raise InvalidArgumentError(f"Longitude must be within [-180, 180], got {lon}")
        return cls(lat=lat, lon=lon)

    @property
    def xy(self) -> Tuple[float, float]:
        """(lon, lat) ordering used by ESRI coordinate arrays."""
        return (self.lon, self.lat)


@dataclass(frozen=True)
class PointGeom:
    x: float
    y: float


@dataclass(frozen=True)
class PolylineGeom:
    paths: List[List[List[float]]]


@dataclass(frozen=True)
class PolygonGeom:
    rings: List[List[List[float]]]


Geometry = Union[PointGeom, PolylineGeom, PolygonGeom]


@dataclass
class RawFeature:
    attributes: Dict[str, Any]
    geometry: Optional[Dict[str, Any]] = None

    @classmethod
    def from_esri(cls, esri_feature: Dict[str, Any]) -> 'RawFeature':
        attributes = esri_feature.get('attributes') or {}
        if not isinstance(attributes, dict):
            attributes = {}
        return cls(attributes=attributes, geometry=esri_feature.get('geometry'))


@dataclass
class EnrichedFeature:
    """A feature tagged with containment and distance relative to the query point."""

    id: Optional[str]
    attributes: Dict[str, Any]
    raw_attributes: Dict[str, Any]
    geometry: Geometry
    distance_miles: float
    is_containing: bool
    layer_id: int
    layer_name: str

    def to_dict(self) -> Dict[str, Any]:
        from geometry.geometry_converters import geometry_to_esri

        return {
            'id': self.id,
            'attributes': dict(self.attributes),
            'raw_attributes': dict(self.raw_attributes),
            'geometry': geometry_to_esri(self.geometry),
            'distance_miles': self.distance_miles,
            'is_containing': self.is_containing,
            'layer_id': self.layer_id,
            'layer_name': self.layer_name,
        }

    def to_geojson(self) -> Optional[Dict[str, Any]]:
        from geometry.geometry_converters import geometry_to_geojson_feature

        props = dict(self.raw_attributes)
        props.update({
            'enrich_id': self.id,
            'distance_miles': self.distance_miles,
            'is_containing': self.is_containing,
            'layer_name': self.layer_name,
        })
        return geometry_to_geojson_feature(self.geometry, props)


@dataclass
class LegResult:
    """Raw features gathered by one query leg plus how the leg ended."""

    features: List[RawFeature] = field(default_factory=list)
    pages_fetched: int = 0
    stopped_reason: Optional[str] = None
    error: Optional[str] = None
    partial: bool = False
    fallback_used: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.features

    @property
    def rejected_by_service(self) -> bool:
        """The service answered with an error payload and no features."""
        return self.failed and (self.stopped_reason or '').startswith('error:')

    def to_metadata(self) -> Dict[str, Any]:
        return {
            'feature_count': len(self.features),
            'pages_fetched': self.pages_fetched,
            'stopped_reason': self.stopped_reason,
            'error': self.error,
            'partial': self.partial,
            'fallback_used': self.fallback_used,
        }
