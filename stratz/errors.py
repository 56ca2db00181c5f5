from __future__ import annotations

from typing import Optional


class StratzError(Exception):
    """Base class for upstream failures."""


class AuthError(StratzError):
    """The API token was rejected (HTTP 401). Never retried."""


class RateLimitError(StratzError):
    """HTTP 429 and the rate-limit wait budget is spent."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class TransportError(StratzError):
    """Network failure, timeout, edge block page, or retries exhausted.

    ``proxy_related`` marks failures that should move traffic to another
    proxy endpoint (403, refused/reset connections, DNS, timeouts, HTML
    block pages).
    """

    def __init__(self, message: str, *, status: Optional[int] = None, proxy_related: bool = False):
        super().__init__(message)
        self.status = status
        self.proxy_related = proxy_related
