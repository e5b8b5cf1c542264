"""
SMART Backend Services client.

This package obtains OAuth2 access tokens from SMART on FHIR authorization
servers with the backend services (JWT-bearer client credentials) flow and
publishes the client's public key material.
"""

# Package version
__version__ = "1.0.0"

from smart_backend_services.utils.logging import configure_logging, get_logger, log_with_context

# ----------------------------------------------------------------------
# Public API re-exports
# ----------------------------------------------------------------------
from smart_backend_services.exceptions import (
    ConfigurationError,
    DiscoveryError,
    EndpointNotFoundError,
    ExchangeError,
    NotConfiguredError,
    ResolutionFailedError,
    SigningError,
    SmartBackendError,
)
from smart_backend_services.domain.bindings import BindingStore, ClientIdentity, ServerBinding
from smart_backend_services.infrastructure.api_clients import (
    EndpointResolver,
    HttpTransport,
    TokenManager,
    create_token_manager,
    get_token_with_retry,
)
from smart_backend_services.security.keys import KeyMaterialProvider
from smart_backend_services.utils.config import SmartConfig, load_config

__all__ = [
    "__version__",
    # Token management
    "TokenManager",
    "create_token_manager",
    "get_token_with_retry",
    "EndpointResolver",
    "HttpTransport",
    "BindingStore",
    "ServerBinding",
    "ClientIdentity",
    "KeyMaterialProvider",
    # Configuration
    "SmartConfig",
    "load_config",
    # Errors
    "SmartBackendError",
    "ConfigurationError",
    "NotConfiguredError",
    "DiscoveryError",
    "EndpointNotFoundError",
    "ResolutionFailedError",
    "SigningError",
    "ExchangeError",
    # Logging
    "get_logger",
    "log_with_context",
    "configure_logging",
]
