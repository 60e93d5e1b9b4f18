"""
Score provider client (football-data.org v4) with rate limiting and error classification.

Fetches one match at a time. Rate limits and server errors are never raised to
callers: the match is simply skipped until the next cycle.
"""

import asyncio
import logging
import random
import time
from typing import Any, Dict, Optional

import httpx
from asyncio_throttle import Throttler

from config import Config
from utils.errors import (
    NonRetryableProviderError,
    ProviderError,
    TransientProviderError,
    is_transient_status,
)

logger = logging.getLogger(__name__)


class ScoreProviderClient:
    """Client for the external score provider."""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_url = config.football_data_base_url.rstrip("/")

        # Provider quota is per minute; min_interval spaces bursts inside it
        self.throttler = Throttler(
            rate_limit=config.max_requests_per_minute,
            period=60.0
        )
        self.min_interval = config.min_request_interval
        self.last_request_time = 0.0

        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            follow_redirects=True,
            transport=transport,
            headers={
                "X-Auth-Token": config.football_data_api_key,
                "Accept": "application/json",
                "Cache-Control": "no-cache",
            }
        )

    async def _wait_for_rate_limit(self):
        """Wait to respect rate limiting."""
        await self.throttler.acquire()

        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_interval:
            wait_time = self.min_interval - time_since_last
            # Add jitter (±25%)
            jitter = wait_time * 0.25 * (random.random() * 2 - 1)
            await asyncio.sleep(wait_time + jitter)

        self.last_request_time = time.time()

    async def _get_json(self, endpoint: str) -> Dict[str, Any]:
        """
        GET an endpoint and return its JSON body.

        Raises:
            TransientProviderError: 429, 5xx, timeout or network error
            NonRetryableProviderError: any other non-2xx or a non-JSON body
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        await self._wait_for_rate_limit()

        try:
            response = await self.client.get(url)
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"Timeout calling {endpoint}") from e
        except httpx.NetworkError as e:
            raise TransientProviderError(f"Network error calling {endpoint}: {e}") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise NonRetryableProviderError(
                    f"Invalid JSON from {endpoint}", status_code=response.status_code
                ) from e

        status_code = response.status_code
        if status_code == 429:
            logger.warning("Rate limited by score provider", extra={
                "endpoint": endpoint,
                "retry_after": response.headers.get("Retry-After"),
            })
            raise TransientProviderError("Rate limited", status_code=status_code)
        if is_transient_status(status_code):
            raise TransientProviderError(
                f"Server error {status_code}", status_code=status_code
            )

        raise NonRetryableProviderError(
            f"Non-retryable error {status_code}: {response.text[:500]}",
            status_code=status_code,
        )

    async def fetch_match(self, match_id: int) -> Optional[Dict[str, Any]]:
        """
        Get one match's current state.

        Args:
            match_id: Provider match id

        Returns:
            Raw match payload, or None when the provider could not answer this
            cycle (rate limit, server error, any other non-2xx).
        """
        try:
            payload = await self._get_json(f"/matches/{match_id}")
        except TransientProviderError as e:
            logger.info("Score provider unavailable for match, retry next cycle", extra={
                "match_id": match_id,
                "status_code": e.status_code,
                "error": str(e),
            })
            return None
        except ProviderError as e:
            logger.error("Score provider rejected match request", extra={
                "match_id": match_id,
                "status_code": e.status_code,
                "error": str(e),
            })
            return None

        if not isinstance(payload, dict):
            logger.error("Unexpected match payload shape", extra={
                "match_id": match_id,
                "payload_type": type(payload).__name__,
            })
            return None

        return payload

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
