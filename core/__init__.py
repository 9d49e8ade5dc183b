"""
Core modules for GeoEnrich.

This package contains the query engine that enriches a point with features
from ESRI-style feature services.

Modules:
    models: Service descriptors, query point, geometry union, result records
    query_builder: Containment, proximity and polygon query parameters
    transport: Default requests-based fetch_json collaborator
    paginated_fetcher: Offset pagination with safety cap and pacing
    fallback: Within-operator and circle-polygon retries for rejected legs
    normalizer: Canonical field lookup and id deduplication
    ranking: Containing-first, distance-ordered filtering
    layer_query: Containment/proximity orchestration for one layer
    layer_processor: Concurrent enrichment across many layers
"""

__version__ = '1.0.0'
