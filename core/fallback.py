"""
Fallback strategies for rejected query legs.

Feature services differ in which spatial operators and parameters they accept.
When a leg comes back with an error payload and no features, one alternate
request is attempted:

1. Contains on a FeatureServer: retry the same query with Within
2. A distance parameter the service rejected: send an explicit circle polygon
   approximating the radius as a polygon-intersects query

If the alternate request fails as well, the leg ends empty and the engine
carries on with whatever the other leg produced.

Functions:
    select_fallback: Choose the alternate query for a rejected leg
    run_leg: Run a leg through pagination, with at most one fallback attempt
"""

import logging
from typing import Optional, Tuple

from core.models import LegResult, QueryPoint, ServiceDescriptor
from core.paginated_fetcher import DEFAULT_MAX_RECORDS, DEFAULT_PAGE_DELAY, paginated_query
from core.query_builder import CONTAINS, WITHIN, QuerySpec, build_polygon_spec, with_spatial_rel
from core.transport import JSONTransport
from geometry.circle import DEFAULT_CIRCLE_VERTICES, circle_to_esri_polygon
from utils.logger import get_logger

logger = get_logger(__name__)

FALLBACK_WITHIN = 'within_operator'
FALLBACK_CIRCLE = 'circle_polygon'


def select_fallback(
    spec: QuerySpec,
    point: QueryPoint,
    radius_miles: Optional[float],
    descriptor: ServiceDescriptor,
    circle_vertices: int = DEFAULT_CIRCLE_VERTICES
) -> Optional[Tuple[QuerySpec, str]]:
    """
    Pick the alternate request for a leg the service rejected.

    Parameters:
    -----------
    spec : QuerySpec
        The rejected query
    point : QueryPoint
        Query center (circle center for the polygon fallback)
    radius_miles : Optional[float]
        Effective radius of the leg, if it is a radius query
    descriptor : ServiceDescriptor
        Target dataset
    circle_vertices : int
        Vertex count of the circle approximation (default: 64)

    Returns:
    --------
    Optional[Tuple[QuerySpec, str]]
        (alternate spec, fallback label), or None if no fallback applies
    """
    if spec.spatial_rel == CONTAINS and descriptor.is_feature_server:
        return with_spatial_rel(spec, WITHIN), FALLBACK_WITHIN

    if spec.uses_distance and radius_miles is not None and radius_miles > 0:
        circle = circle_to_esri_polygon(point, radius_miles, circle_vertices)
        if circle is not None:
            return build_polygon_spec(spec.url, circle, spec.batch_size), FALLBACK_CIRCLE

    return None


async def run_leg(
    transport: JSONTransport,
    spec: QuerySpec,
    point: QueryPoint,
    descriptor: ServiceDescriptor,
    leg_name: str,
    radius_miles: Optional[float] = None,
    max_records: int = DEFAULT_MAX_RECORDS,
    page_delay: float = DEFAULT_PAGE_DELAY,
    circle_vertices: int = DEFAULT_CIRCLE_VERTICES,
    log: Optional[logging.Logger] = None
) -> LegResult:
    """
    Fetch every page of one leg, retrying once with a fallback if rejected.

    A transport failure (timeout, DNS, HTTP status) is not retried; only an
    error payload with zero features triggers the fallback.
    """
    log = log or logger
    label = f"{descriptor.layer_name} {leg_name}"

    leg = await paginated_query(
        transport, spec, label,
        max_records=max_records, page_delay=page_delay, log=log
    )
    if not leg.rejected_by_service:
        return leg

    fallback = select_fallback(spec, point, radius_miles, descriptor, circle_vertices)
    if fallback is None:
        log.warning(f"    ⚠ {label} query failed ({leg.error}), no fallback available")
        return leg

    fallback_spec, fallback_name = fallback
    log.info(f"    - {label} query rejected ({leg.error}), retrying with {fallback_name}")

    retry = await paginated_query(
        transport, fallback_spec, label,
        max_records=max_records, page_delay=page_delay, log=log
    )
    retry.fallback_used = fallback_name
    retry.pages_fetched += leg.pages_fetched

    if retry.failed:
        log.warning(f"    ⚠ {label} fallback {fallback_name} failed ({retry.error}), leg is empty")
    return retry
