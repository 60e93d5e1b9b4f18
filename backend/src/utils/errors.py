"""
Provider error taxonomy shared by the score and push clients.
"""

from typing import Optional


class ProviderError(Exception):
    """Base exception for third-party provider errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """429, 5xx, timeouts and network errors. Retried on the next cycle, never surfaced."""
    pass


class NonRetryableProviderError(ProviderError):
    """Any other non-2xx response (4xx except 429)."""
    pass


def is_transient_status(status_code: int) -> bool:
    """429 and every 5xx are transient."""
    return status_code == 429 or 500 <= status_code < 600
