"""
API client modules for SMART backend services.

This package contains token endpoint discovery, the HTTP transport and the
token manager that performs the JWT-bearer client credentials exchange.
"""

from .discovery import EndpointResolver
from .http_transport import HttpTransport
from .smart_backend import TokenManager, create_token_manager, get_token_with_retry

__all__ = [
    "EndpointResolver",
    "HttpTransport",
    "TokenManager",
    "create_token_manager",
    "get_token_with_retry",
]
