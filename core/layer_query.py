"""
Point enrichment query for a single feature-service layer.

This module runs the containment and proximity legs against one dataset and
merges them into an ordered list of enriched features:

1. Containment leg (polygon datasets): which features contain the point.
   Services sometimes return near-matches, so every polygon is re-verified
   client-side with point-in-polygon before it is tagged as containing.
2. Proximity leg (when a radius is given): features within the effective
   radius. Distances are computed client-side to the nearest point, segment or
   ring edge. Ids already merged (from the containment leg or an earlier page)
   are dropped, first occurrence wins.

Both legs paginate and fall back to an alternate query once if the service
rejects them. Remote failures never raise: a failed leg contributes nothing
and is reported in the returned metadata and the log.

Functions:
    validate_query_args: Fail fast on bad points and radii
    query_with_metadata: Query a layer and return features plus metadata
    query: Query a layer and return the ordered feature list
"""

import logging
import math
import time
from typing import Dict, List, Optional, Tuple, Union

from config.config_loader import DEFAULT_QUERY_SETTINGS
from core.fallback import run_leg
from core.models import (
    EnrichedFeature,
    GeometryKind,
    InvalidArgumentError,
    LegResult,
    PointGeom,
    PolygonGeom,
    PolylineGeom,
    QueryPoint,
    RawFeature,
    ServiceDescriptor,
)
from core.normalizer import deduplicate, normalize_attributes
from core.query_builder import build_containment_spec, build_proximity_spec
from core.ranking import rank_features
from core.transport import JSONTransport, RequestsTransport
from geometry.geometry_converters import parse_esri_geometry
from geometry.geometry_math import (
    distance_to_point,
    distance_to_polygon_boundary,
    distance_to_polyline,
    point_in_polygon,
)
from utils.logger import get_logger

logger = get_logger(__name__)

PointLike = Union[QueryPoint, Tuple[float, float]]


def validate_query_args(
    point: PointLike,
    radius_miles: Optional[float],
    descriptor: ServiceDescriptor
) -> Tuple[QueryPoint, Optional[float]]:
    """
    Validate the query point and radius and compute the effective radius.

    Parameters:
    -----------
    point : QueryPoint or (lat, lon) tuple
        Query location
    radius_miles : Optional[float]
        Requested search radius. Optional for polygon datasets (containment
        only when None or 0); required and positive for point and polyline
        datasets
    descriptor : ServiceDescriptor
        Target dataset

    Returns:
    --------
    Tuple[QueryPoint, Optional[float]]
        Validated point and effective radius (None when no proximity leg runs)

    Raises:
    -------
    InvalidArgumentError
        If the point is out of range or the radius is invalid
    """
    if isinstance(point, QueryPoint):
        point = QueryPoint.create(point.lat, point.lon)
    else:
        try:
            lat, lon = point
        except (TypeError, ValueError):
            raise InvalidArgumentError(f"Point must be a QueryPoint or (lat, lon) pair, got {point!r}")
        point = QueryPoint.create(lat, lon)

    radius_required = descriptor.geometry_kind != GeometryKind.POLYGON

    if radius_miles is None:
        if radius_required:
            raise InvalidArgumentError(
                f"{descriptor.layer_name} is a {descriptor.geometry_kind.value} layer; a radius is required"
            )
        return point, None

    try:
        radius = float(radius_miles)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Radius must be numeric, got {radius_miles!r}")

    if math.isnan(radius) or radius < 0:
        raise InvalidArgumentError(f"Radius must be non-negative, got {radius_miles}")
    if radius == 0:
        if radius_required:
            raise InvalidArgumentError(
                f"{descriptor.layer_name} is a {descriptor.geometry_kind.value} layer; radius must be positive"
            )
        return point, None

    return point, descriptor.effective_radius(radius)


def _enrich(
    raw: RawFeature,
    normalized: Dict,
    geometry,
    distance_miles: float,
    is_containing: bool,
    descriptor: ServiceDescriptor
) -> EnrichedFeature:
    return EnrichedFeature(
        id=normalized['id'],
        attributes=normalized,
        raw_attributes=raw.attributes,
        geometry=geometry,
        distance_miles=0.0 if is_containing else distance_miles,
        is_containing=is_containing,
        layer_id=descriptor.layer_id,
        layer_name=descriptor.layer_name
    )


def _distance_to_geometry(point: QueryPoint, geometry) -> float:
    if isinstance(geometry, PointGeom):
        return distance_to_point(point.xy, (geometry.x, geometry.y))
    if isinstance(geometry, PolylineGeom):
        return distance_to_polyline(point.xy, geometry.paths)
    return distance_to_polygon_boundary(point.xy, geometry.rings)


def _collect_containing(
    leg: LegResult,
    point: QueryPoint,
    descriptor: ServiceDescriptor,
    seen_ids: set,
    stats: Dict
) -> List[EnrichedFeature]:
    containing = []
    for raw in leg.features:
        geometry = parse_esri_geometry(raw.geometry, descriptor.geometry_kind)
        if geometry is None:
            stats['skipped_malformed'] += 1
            continue
        if not point_in_polygon(point.xy, geometry.rings):
            stats['unverified_containment'] += 1
            continue

        normalized = normalize_attributes(raw.attributes, descriptor)
        containing.append(_enrich(raw, normalized, geometry, 0.0, True, descriptor))
    return _merge_unique(containing, seen_ids, stats)


def _collect_nearby(
    leg: LegResult,
    point: QueryPoint,
    effective_radius: float,
    descriptor: ServiceDescriptor,
    seen_ids: set,
    stats: Dict
) -> List[EnrichedFeature]:
    nearby = []
    for raw in leg.features:
        geometry = parse_esri_geometry(raw.geometry, descriptor.geometry_kind)
        if geometry is None:
            stats['skipped_malformed'] += 1
            continue

        if isinstance(geometry, PolygonGeom) and point_in_polygon(point.xy, geometry.rings):
            is_containing, distance = True, 0.0
        else:
            is_containing, distance = False, _distance_to_geometry(point, geometry)
            if not distance <= effective_radius:
                stats['outside_radius'] += 1
                continue

        normalized = normalize_attributes(raw.attributes, descriptor)
        nearby.append(_enrich(raw, normalized, geometry, distance, is_containing, descriptor))
    return _merge_unique(nearby, seen_ids, stats)


def _merge_unique(features: List[EnrichedFeature], seen_ids: set, stats: Dict) -> List[EnrichedFeature]:
    """Drop ids already merged (earlier leg or earlier page), counting them."""
    unique = deduplicate(features, seen_ids)
    stats['duplicates_skipped'] += len(features) - len(unique)
    return unique


async def query_with_metadata(
    point: PointLike,
    radius_miles: Optional[float],
    descriptor: ServiceDescriptor,
    transport: Optional[JSONTransport] = None,
    settings: Optional[Dict] = None,
    log: Optional[logging.Logger] = None
) -> Tuple[List[EnrichedFeature], Dict]:
    """
    Query one dataset for features containing or near a point.

    Parameters:
    -----------
    point : QueryPoint or (lat, lon) tuple
        Query location
    radius_miles : Optional[float]
        Requested radius; capped at descriptor.max_radius_miles
    descriptor : ServiceDescriptor
        Target dataset
    transport : Optional[JSONTransport]
        fetch_json collaborator (default: a RequestsTransport for this call)
    settings : Optional[Dict]
        Query settings overriding DEFAULT_QUERY_SETTINGS
    log : Optional[logging.Logger]
        Logger to report through (default: module logger)

    Returns:
    --------
    Tuple[List[EnrichedFeature], Dict]
        Features (containing first, then ascending distance) and metadata

    Metadata Keys:
        - layer_name: Name of the layer
        - feature_count: Final count after merge and filtering
        - containing_count: Features that contain the point
        - effective_radius_miles: Radius actually used (None if containment only)
        - legs: Per-leg pages_fetched / stopped_reason / error / fallback_used
        - skipped_malformed: Features dropped for missing or invalid geometry
        - unverified_containment: Containment hits that failed point-in-polygon
        - duplicates_skipped: Features whose id was already merged
        - outside_radius: Proximity hits farther than the effective radius
        - error: Combined error message of failed legs, or None
        - query_time: Total query time in seconds

    Raises:
    -------
    InvalidArgumentError
        Only for an invalid point or radius
    """
    log = log or logger
    point, effective_radius = validate_query_args(point, radius_miles, descriptor)
    settings = {**DEFAULT_QUERY_SETTINGS, **(settings or {})}

    owns_transport = transport is None
    if owns_transport:
        transport = RequestsTransport(timeout=settings['request_timeout'])

    leg_options = {
        'max_records': int(settings['max_records']),
        'page_delay': float(settings['page_delay_seconds']),
        'circle_vertices': int(settings['circle_vertices']),
        'log': log,
    }
    batch_size = int(settings['batch_size'])

    metadata = {
        'layer_name': descriptor.layer_name,
        'feature_count': 0,
        'containing_count': 0,
        'effective_radius_miles': effective_radius,
        'legs': {},
        'error': None,
        'query_time': 0.0
    }
    stats = {
        'skipped_malformed': 0,
        'unverified_containment': 0,
        'duplicates_skipped': 0,
        'outside_radius': 0
    }

    start_time = time.time()
    radius_text = f"within {effective_radius:g} mi" if effective_radius else "containment only"
    log.info(f"  Querying {descriptor.layer_name} at [{point.lat}, {point.lon}] ({radius_text})...")

    merged: List[EnrichedFeature] = []
    seen_ids: set = set()
    errors = []

    try:
        if descriptor.geometry_kind == GeometryKind.POLYGON:
            spec = build_containment_spec(point, descriptor, batch_size)
            leg = await run_leg(transport, spec, point, descriptor, 'containment', **leg_options)
            metadata['legs']['containment'] = leg.to_metadata()
            if leg.failed:
                errors.append(f"containment: {leg.error}")
            merged.extend(_collect_containing(leg, point, descriptor, seen_ids, stats))

        if effective_radius:
            spec = build_proximity_spec(point, effective_radius, descriptor, batch_size)
            leg = await run_leg(
                transport, spec, point, descriptor, 'proximity',
                radius_miles=effective_radius, **leg_options
            )
            metadata['legs']['proximity'] = leg.to_metadata()
            if leg.failed:
                errors.append(f"proximity: {leg.error}")
            merged.extend(_collect_nearby(leg, point, effective_radius, descriptor, seen_ids, stats))
    finally:
        if owns_transport:
            transport.close()

    features = rank_features(merged, effective_radius)

    metadata.update(stats)
    metadata['feature_count'] = len(features)
    metadata['containing_count'] = sum(1 for f in features if f.is_containing)
    metadata['error'] = '; '.join(errors) if errors else None
    metadata['query_time'] = time.time() - start_time

    if stats['skipped_malformed']:
        log.debug(f"    - Skipped {stats['skipped_malformed']} features with missing/invalid geometry")
    if stats['unverified_containment']:
        log.debug(f"    - {stats['unverified_containment']} containment hits failed point-in-polygon check")

    if features:
        log.info(
            f"    ✓ Found {len(features)} features "
            f"({metadata['containing_count']} containing, "
            f"{len(features) - metadata['containing_count']} nearby)"
        )
    elif errors:
        log.warning(f"    ✗ No features ({metadata['error']})")
    else:
        log.info("    - No features found")

    return features, metadata


async def query(
    point: PointLike,
    radius_miles: Optional[float],
    descriptor: ServiceDescriptor,
    transport: Optional[JSONTransport] = None,
    settings: Optional[Dict] = None,
    log: Optional[logging.Logger] = None
) -> List[EnrichedFeature]:
    """Ordered enriched features for one dataset; see query_with_metadata."""
    features, _ = await query_with_metadata(point, radius_miles, descriptor, transport, settings, log)
    return features
