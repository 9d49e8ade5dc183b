#!/usr/bin/env python
"""
GeoEnrich
=========
Enrich a coordinate with features from government GIS feature services: which
configured features contain the point and which lie within a search radius.

Usage:
    python geo_enrich.py 38.58 -121.49 --radius 5
    python geo_enrich.py 61.2 -149.9 --radius 25 --service "Alaska DNR Well Sites" --output results.json
    python geo_enrich.py 38.58 -121.49 --radius 5 --output nearby.geojson --format geojson
"""

import argparse
import asyncio
import json
import time
from pathlib import Path
from typing import Dict, List, Optional

from utils.logger import setup_logging, get_logger
from config.config_loader import load_config, load_query_settings, load_service_descriptors
from core.layer_processor import process_all_layers
from core.models import EnrichedFeature, InvalidArgumentError, QueryPoint

# Number of features listed per layer in the console summary
SUMMARY_FEATURES_PER_LAYER = 3

OUTPUT_FORMATS = ('json', 'geojson')


def build_feature_collection(results: Dict[str, List[EnrichedFeature]], metadata: Dict) -> Dict:
    """
    Merge every layer's features into one GeoJSON FeatureCollection.

    Features keep their layer order and ranking; each carries its layer name,
    distance and containment flag as properties.
    """
    features = []
    for layer_features in results.values():
        for feature in layer_features:
            geojson = feature.to_geojson()
            if geojson is not None:
                features.append(geojson)
    return {
        'type': 'FeatureCollection',
        'features': features,
        'metadata': metadata
    }


def write_results(
    results: Dict[str, List[EnrichedFeature]],
    metadata: Dict,
    output_file: Path,
    output_format: str = 'json'
) -> Path:
    """
    Save results to disk as layer-keyed JSON or as a GeoJSON FeatureCollection.

    Raises:
        ValueError: If output_format is not one of OUTPUT_FORMATS
    """
    if output_format not in OUTPUT_FORMATS:
        raise ValueError(f"Unknown output format: {output_format}")

    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    if output_format == 'geojson':
        payload = build_feature_collection(results, metadata)
    else:
        payload = {
            'layers': {
                name: [feature.to_dict() for feature in features]
                for name, features in results.items()
            },
            'metadata': metadata
        }
    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2, default=str)
    return output_file



def main(
    lat: float,
    lon: float,
    radius_miles: Optional[float] = None,
    services: Optional[List[str]] = None,
    config_path: Optional[str] = None,
    output_file: Optional[str] = None,
    output_format: str = 'json',
    verbose: bool = False
) -> Optional[Dict[str, List[EnrichedFeature]]]:
    """
    Main execution workflow for GeoEnrich.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load configuration and select services
    3. Query every selected service for the point
    4. Log the nearest features per layer and optionally save JSON

    Parameters:
    -----------
    lat, lon : float
        Query location in decimal degrees
    radius_miles : Optional[float]
        Search radius (defaults to the configured default_radius_miles)
    services : Optional[List[str]]
        Names of services to query (default: every enabled service)
    config_path : Optional[str]
        Alternate services configuration file
    output_file : Optional[str]
        Path of a file to write results and metadata to
    output_format : str
        'json' (features grouped by layer) or 'geojson' (FeatureCollection)
    verbose : bool
        Show DEBUG messages on the console

    Returns:
    --------
    Optional[Dict[str, List[EnrichedFeature]]]
        Features per layer if successful, None if failed
    """
    workflow_start_time = time.time()

    log_file = setup_logging(verbose=verbose)
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("GEOENRICH - Point Enrichment Tool")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        settings = load_query_settings(config)
        descriptors = load_service_descriptors(config)

        if services:
            wanted = set(services)
            unknown = wanted - {d.layer_name for d in descriptors}
            if unknown:
                logger.warning(f"⚠ Unknown or disabled services ignored: {', '.join(sorted(unknown))}")
            descriptors = [d for d in descriptors if d.layer_name in wanted]

        logger.info(f"Configuration loaded: {len(descriptors)} services selected")

        if radius_miles is None:
            radius_miles = settings['default_radius_miles']

        point = QueryPoint.create(lat, lon)
        results, metadata = asyncio.run(
            process_all_layers(point, radius_miles, descriptors, settings=settings)
        )

        logger.info("")
        for layer_name, features in results.items():
            logger.info(f"{layer_name}:")
            for feature in features[:SUMMARY_FEATURES_PER_LAYER]:
                label = feature.attributes.get('name') or feature.id or '(no id)'
                where = "contains point" if feature.is_containing else f"{feature.distance_miles:.2f} mi"
                logger.info(f"  - {label}: {where}")
            if len(features) > SUMMARY_FEATURES_PER_LAYER:
                logger.info(f"  ... and {len(features) - SUMMARY_FEATURES_PER_LAYER} more")

        if output_file:
            saved = write_results(results, metadata, Path(output_file), output_format)
            logger.info(f"✓ Results saved to: {saved}")

        total_execution_time = time.time() - workflow_start_time
        logger.info("")
        logger.info("✓ WORKFLOW COMPLETE")
        logger.info(f"✓ Total execution time: {total_execution_time:.2f} seconds")
        return results

    except InvalidArgumentError as e:
        logger.error(f"✗ Invalid query: {e}")
        return None

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time
        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ WORKFLOW FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Workflow failed after {elapsed_time:.2f} seconds")
        logger.error(f"See log file for details: {log_file}")
        return None


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enrich a coordinate with nearby GIS features.")
    parser.add_argument('lat', type=float, help="Latitude in decimal degrees")
    parser.add_argument('lon', type=float, help="Longitude in decimal degrees")
    parser.add_argument('--radius', type=float, default=None, help="Search radius in miles")
    parser.add_argument('--service', action='append', dest='services',
                        help="Service name to query (repeatable, default: all enabled)")
    parser.add_argument('--config', dest='config_path', default=None,
                        help="Path to a services configuration JSON file")
    parser.add_argument('--output', dest='output_file', default=None,
                        help="Write results and metadata to this file")
    parser.add_argument('--format', dest='output_format', choices=OUTPUT_FORMATS, default='json',
                        help="Output file format (default: json)")
    parser.add_argument('-v', '--verbose', action='store_true',
                        help="Show debug messages on the console")
    return parser.parse_args(argv)


def cli(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    output = main(
        args.lat, args.lon, args.radius,
        services=args.services,
        config_path=args.config_path,
        output_file=args.output_file,
        output_format=args.output_format,
        verbose=args.verbose
    )
    if output is None:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
