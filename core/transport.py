"""
HTTP transport for feature-service queries.

The engine only needs one collaborator call: fetch_json(url, params) returning
parsed JSON. RequestsTransport provides it with one requests.post per call (or a
caller-supplied session), sending the parameters as a form POST to avoid URI
length limits on large polygon queries.
The blocking request runs in a worker thread so that several datasets can be
queried concurrently from one event loop.

Failures surface as requests.exceptions.RequestException (timeouts, DNS,
non-2xx) or ValueError when the body is not JSON; the engine treats both as
leg-level network errors.

Classes:
    JSONTransport: Protocol implemented by transports
    RequestsTransport: Default requests-based transport
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import requests

from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30
USER_AGENT = 'GeoEnrich/1.0'


class JSONTransport(Protocol):
    async def fetch_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        ...


class RequestsTransport:
    """
    requests-based implementation of the fetch_json collaborator.

    Parameters:
    -----------
    timeout : float
        Per-request timeout in seconds (default: 30)
    session : Optional[requests.Session]
        Session to post through. When omitted every request is an independent
        requests.post, so concurrent worker threads share no connection state
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session

    def _post(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        logger.debug(f"Querying: {url}")
        post = self.session.post if self.session is not None else requests.post
        response = post(url, data=params, headers={'User-Agent': USER_AGENT}, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {url}, got {type(data).__name__}")
        return data

    async def fetch_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._post, url, params)

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
