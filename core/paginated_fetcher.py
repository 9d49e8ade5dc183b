"""
Offset-based pagination over feature-service query results.

Services cap the number of records per response (1000-2000 typical) and set
'exceededTransferLimit' when more are available. The fetcher walks
resultOffset forward one page at a time, pausing briefly between pages to
respect upstream rate limits, until the service signals completion, a safety
cap is reached, or the transport fails.

Functions:
    error_message: Extract a readable message from an ESRI 'error' payload
    paginated_query: Execute a paginated query and collect all raw features
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from core.models import LegResult, RawFeature
from core.query_builder import QuerySpec
from core.transport import JSONTransport
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_RECORDS = 100000
DEFAULT_PAGE_DELAY = 0.1


def error_message(error: Any) -> str:
    """Return the 'message' of an ESRI error object, or its string form."""
    if isinstance(error, dict):
        message = error.get('message') or 'Unknown error'
        details = error.get('details')
        if details:
            if isinstance(details, (list, tuple)):
                details = '; '.join(str(d) for d in details)
            return f"{message} ({details})"
        return str(message)
    return str(error)


def _page_features(result: Dict) -> List[RawFeature]:
    features = result.get('features')
    if not isinstance(features, list):
        return []
    return [RawFeature.from_esri(f) for f in features if isinstance(f, dict)]


async def paginated_query(
    transport: JSONTransport,
    spec: QuerySpec,
    layer_name: str,
    max_records: int = DEFAULT_MAX_RECORDS,
    page_delay: float = DEFAULT_PAGE_DELAY,
    log: Optional[logging.Logger] = None
) -> LegResult:
    """
    Execute a paginated query to fetch all features of one query leg.

    Pages are requested sequentially with resultOffset/resultRecordCount. A
    page is the last one when it holds fewer records than the batch size and
    'exceededTransferLimit' is not set, or when it is empty.

    Parameters:
    -----------
    transport : JSONTransport
        Collaborator providing fetch_json(url, params)
    spec : QuerySpec
        Query to paginate (its offset is ignored; pagination starts at 0)
    layer_name : str
        Name of the layer for logging
    max_records : int
        Safety cap on the offset (default: 100,000 records)
    page_delay : float
        Seconds to wait between pages (default: 0.1)
    log : Optional[logging.Logger]
        Logger to report through (default: module logger)

    Returns:
    --------
    LegResult
        Accumulated raw features plus pages_fetched, stopped_reason, error
        and partial. stopped_reason is None when the service reported
        completion, otherwise one of 'safety_limit', 'request_timeout',
        'request_error: ...', 'invalid_response: ...', 'error: ...' or
        'partial: ...'.
    """
    log = log or logger
    leg = LegResult()
    offset = 0

    while True:
        page_number = leg.pages_fetched + 1
        page_spec = spec.page(offset)

        try:
            result = await transport.fetch_json(page_spec.url, page_spec.params())
        except (requests.exceptions.Timeout, asyncio.TimeoutError, TimeoutError):
            log.warning(f"    ⚠ {layer_name}: request timeout on page {page_number}")
            leg.stopped_reason = 'request_timeout'
            leg.error = 'Request timed out'
            break
        except requests.exceptions.RequestException as e:
            log.warning(f"    ⚠ {layer_name}: request error on page {page_number}: {e}")
            leg.stopped_reason = f'request_error: {e}'
            leg.error = f"Request failed: {e}"
            break
        except OSError as e:
            # Raised by injected transports (ConnectionResetError, socket errors)
            log.warning(f"    ⚠ {layer_name}: connection error on page {page_number}: {e!r}")
            leg.stopped_reason = f'request_error: {e!r}'
            leg.error = f"Request failed: {e!r}"
            break
        except ValueError as e:
            log.warning(f"    ⚠ {layer_name}: unreadable response on page {page_number}: {e}")
            leg.stopped_reason = f'invalid_response: {e}'
            leg.error = f"Invalid response: {e}"
            break

        leg.pages_fetched = page_number

        if not isinstance(result, dict):
            leg.stopped_reason = 'invalid_response: not a JSON object'
            leg.error = 'Invalid response: not a JSON object'
            log.warning(f"    ⚠ {layer_name}: page {page_number} is not a JSON object")
            break

        page_features = _page_features(result)

        if result.get('error'):
            msg = error_message(result['error'])
            leg.error = msg
            if page_features:
                # Service reported an error but still sent data: keep it and stop
                leg.features.extend(page_features)
                leg.partial = True
                leg.stopped_reason = f'partial: {msg}'
                log.warning(
                    f"    ⚠ {layer_name}: page {page_number} returned {len(page_features)} "
                    f"features with error '{msg}', stopping pagination"
                )
            else:
                leg.partial = bool(leg.features)
                leg.stopped_reason = f'error: {msg}'
                log.warning(f"    ⚠ {layer_name}: service error on page {page_number}: {msg}")
            break

        leg.features.extend(page_features)
        exceeded_limit = result.get('exceededTransferLimit') is True
        page_count = len(page_features)

        if page_count == 0 or (page_count < spec.batch_size and not exceeded_limit):
            log.debug(f"    - {layer_name} page {page_number}: {page_count} features (complete)")
            break

        log.debug(f"    - {layer_name} page {page_number}: {page_count} features (more available)")
        offset += page_count

        if offset >= max_records:
            leg.stopped_reason = 'safety_limit'
            leg.partial = True
            log.warning(
                f"    ⚠ {layer_name}: stopping pagination at {offset} records "
                f"(safety limit {max_records}). Additional features may exist."
            )
            break

        await asyncio.sleep(page_delay)

    return leg
