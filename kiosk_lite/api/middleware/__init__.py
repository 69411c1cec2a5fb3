"""Middleware components for request processing.

Provides request correlation ID tracking so log lines and upstream calls made
while serving a request can be tied back to it.
"""

from .correlation_id import correlation_id_middleware, get_request_id

__all__ = ["correlation_id_middleware", "get_request_id"]
