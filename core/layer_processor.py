"""
Layer processing module for GeoEnrich.

This module handles batch enrichment of a point against multiple feature-service
layers. All configured layers are queried concurrently on one event loop (each
layer is an independent task with no shared state) and results and metadata are
collected per layer.

Functions:
    process_all_layers: Query all configured layers and return results
    log_query_summary: Log totals for a finished batch
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from core.layer_query import query_with_metadata, validate_query_args
from core.models import EnrichedFeature, QueryPoint, ServiceDescriptor
from core.transport import JSONTransport, RequestsTransport
from config.config_loader import DEFAULT_QUERY_SETTINGS
from utils.logger import get_logger

logger = get_logger(__name__)


async def process_all_layers(
    point: QueryPoint,
    radius_miles: Optional[float],
    descriptors: List[ServiceDescriptor],
    transport: Optional[JSONTransport] = None,
    settings: Optional[Dict] = None
) -> Tuple[Dict[str, List[EnrichedFeature]], Dict[str, Dict]]:
    """
    Query all configured layers for features containing or near a point.

    Parameters:
    -----------
    point : QueryPoint
        Query location
    radius_miles : Optional[float]
        Requested radius; each layer caps it at its own maximum
    descriptors : List[ServiceDescriptor]
        Layers to query (disabled layers are skipped)
    transport : Optional[JSONTransport]
        Shared fetch_json collaborator (default: one RequestsTransport for the batch)
    settings : Optional[Dict]
        Query settings overriding DEFAULT_QUERY_SETTINGS

    Returns:
    --------
    Tuple[Dict[str, List[EnrichedFeature]], Dict[str, Dict]]
        - Dictionary of layer results (layer name -> features), layers with
          at least one feature only
        - Dictionary of metadata (layer name -> metadata dict)

    Raises:
    -------
    InvalidArgumentError
        If the point or radius is invalid for any layer. Validation happens
        before any request is sent.
    """
    settings = {**DEFAULT_QUERY_SETTINGS, **(settings or {})}

    logger.info("=" * 80)
    logger.info("Querying feature services")
    logger.info("=" * 80)

    layers_to_process = []
    for descriptor in descriptors:
        if not descriptor.enabled:
            logger.info(f"Skipping {descriptor.layer_name} (disabled)")
            continue
        layers_to_process.append(descriptor)

    # Fail fast before any network traffic
    for descriptor in layers_to_process:
        validate_query_args(point, radius_miles, descriptor)

    owns_transport = transport is None
    if owns_transport:
        transport = RequestsTransport(timeout=settings['request_timeout'])

    try:
        outcomes = await asyncio.gather(*[
            query_with_metadata(point, radius_miles, descriptor, transport, settings)
            for descriptor in layers_to_process
        ])
    finally:
        if owns_transport:
            transport.close()

    results = {}
    metadata = {}
    for descriptor, (features, meta) in zip(layers_to_process, outcomes):
        if features:
            results[descriptor.layer_name] = features
        metadata[descriptor.layer_name] = meta

    log_query_summary(metadata)
    return results, metadata


def log_query_summary(metadata: Dict[str, Dict]) -> None:
    logger.info("=" * 80)
    logger.info("Query Summary")
    logger.info("=" * 80)

    total_features = sum(m['feature_count'] for m in metadata.values())
    layers_with_data = sum(1 for m in metadata.values() if m['feature_count'] > 0)
    containing = sum(m['containing_count'] for m in metadata.values())
    total_time = max((m['query_time'] for m in metadata.values()), default=0.0)
    fallbacks = sum(
        1 for m in metadata.values()
        for leg in m['legs'].values() if leg.get('fallback_used')
    )
    failed_layers = [name for name, m in metadata.items() if m.get('error')]

    logger.info(f"Total layers queried: {len(metadata)}")
    logger.info(f"Layers with features: {layers_with_data}")
    logger.info(f"Total features found: {total_features} ({containing} containing the point)")
    logger.info(f"Slowest layer query: {total_time:.2f} seconds")
    if fallbacks:
        logger.info(f"Fallback queries used: {fallbacks}")
    if failed_layers:
        logger.warning(f"⚠ {len(failed_layers)} layer(s) had failed queries: {', '.join(failed_layers)}")
