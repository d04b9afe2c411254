"""Shared JSON-over-HTTP transport for destination adapters."""

import asyncio
import logging
from functools import partial
from typing import Any

import requests

from alert_relay.errors import DestinationError

logger = logging.getLogger(__name__)


async def post_json(destination: str, url: str, payload: Any, timeout: float) -> requests.Response:
    """POST ``payload`` as JSON without blocking the event loop.

    Raises DestinationError; ``transient`` is set for timeouts and connection
    failures. No retries.
    """
    loop = asyncio.get_running_loop()
    try:
        # requests is synchronous; run in executor
        response = await loop.run_in_executor(
            None, partial(requests.post, url, json=payload, timeout=timeout)
        )
    except requests.Timeout as e:
        raise DestinationError(destination, url, f"timed out after {timeout}s", transient=True) from e
    except requests.ConnectionError as e:
        raise DestinationError(destination, url, f"connection failed: {e}", transient=True) from e
    except requests.RequestException as e:
        raise DestinationError(destination, url, f"request failed: {e}") from e

    if not response.ok:
        body = (response.text or "")[:300]
        raise DestinationError(destination, url, f"HTTP {response.status_code}: {body}")
    return response
