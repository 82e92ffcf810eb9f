from __future__ import annotations

"""GET-JSON helper with retry for the exchange rate feed.

Runs on a synchronous ``httpx.Client`` because rate lookups happen inside
plain service functions. Client errors (4xx) are not retried; network errors,
5xx and undecodable bodies are, with exponential backoff.
"""
import logging
import time
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


class HttpError(Exception):
    pass


def get_json(
    url: str,
    *,
    timeout: float = 5.0,
    retries: int = 2,
    backoff: float = 0.5,
    transport: Optional[httpx.BaseTransport] = None,
) -> Dict[str, Any]:
    last_err: Optional[Exception] = None
    with httpx.Client(timeout=timeout, transport=transport) as client:
        for attempt in range(retries + 1):
            try:
                resp = client.get(url, headers={"Accept": "application/json"})
                if 400 <= resp.status_code < 500:
                    raise HttpError(f"HTTP {resp.status_code} for {url}")
                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise ValueError("expected a JSON object")
                return data
            except HttpError:
                raise
            except (httpx.HTTPError, ValueError) as e:  # ValueError for JSON decode
                last_err = e
                logger.warning("GET %s failed (attempt %d/%d): %s", url, attempt + 1, retries + 1, e)
                if attempt == retries:
                    break
                time.sleep(backoff * (2**attempt))
    raise HttpError(f"Failed to fetch JSON from {url}: {last_err}")
