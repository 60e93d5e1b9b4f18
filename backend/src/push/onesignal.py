"""
Push provider client (OneSignal REST v1).

Two calls: create a notification for a set of device ids, and look up one
device ("player") to check whether it can still receive pushes.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import Config
from utils.errors import NonRetryableProviderError, TransientProviderError, is_transient_status

logger = logging.getLogger(__name__)

# OneSignal caps include_player_ids at 2000 per request
MAX_RECIPIENTS_PER_REQUEST = 2000


class OneSignalClient:
    """Client for the OneSignal REST API."""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.base_url = config.onesignal_base_url.rstrip("/")
        self.app_id = config.onesignal_app_id
        self.client = httpx.AsyncClient(
            timeout=config.request_timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Basic {config.onesignal_rest_api_key}",
            }
        )

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"Timeout calling {endpoint}") from e
        except httpx.NetworkError as e:
            raise TransientProviderError(f"Network error calling {endpoint}: {e}") from e

        if is_transient_status(response.status_code):
            raise TransientProviderError(
                f"Push provider error {response.status_code}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def create_notification(
        self,
        player_ids: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        POST /notifications.

        Returns the provider body (id, recipients, errors). A 4xx answer is
        returned as a body too, since OneSignal explains rejections there.

        Raises:
            TransientProviderError: 429, 5xx, timeout or network error
        """
        payload: Dict[str, Any] = {
            "app_id": self.app_id,
            "headings": {"en": title},
            "contents": {"en": body},
            "include_player_ids": player_ids,
        }
        if data:
            payload["data"] = data

        response = await self._request("POST", "/notifications", json=payload)
        result = self._json_or_empty(response)
        if not response.is_success:
            logger.warning("Push provider rejected notification", extra={
                "status_code": response.status_code,
                "errors": result.get("errors"),
            })
            result.setdefault("errors", [f"HTTP {response.status_code}"])
        return result

    async def get_player(self, player_id: str) -> Dict[str, Any]:
        """
        GET /players/{id} for a device.

        Raises:
            TransientProviderError: 429, 5xx, timeout or network error
            NonRetryableProviderError: device unknown or request rejected
        """
        response = await self._request(
            "GET", f"/players/{player_id}", params={"app_id": self.app_id}
        )
        if not response.is_success:
            raise NonRetryableProviderError(
                f"Player lookup failed {response.status_code}",
                status_code=response.status_code,
            )
        return self._json_or_empty(response)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
