"""
Exception hierarchy for the SMART backend services client.
"""

from typing import Optional


class SmartBackendError(Exception):
    """Base exception for SMART backend services errors."""
    pass


class ConfigurationError(SmartBackendError):
    """Invalid configuration file or values."""
    pass


class NotConfiguredError(SmartBackendError):
    """The token manager is inactive or disabled; no request was attempted."""
    pass


class DiscoveryError(SmartBackendError):
    """The token endpoint of a FHIR server could not be determined."""

    def __init__(self, message: str, fhir_server_url: Optional[str] = None):
        super().__init__(message)
        self.fhir_server_url = fhir_server_url


class EndpointNotFoundError(DiscoveryError):
    """Neither discovery document advertised a token endpoint."""
    pass


class ResolutionFailedError(DiscoveryError):
    """The CapabilityStatement lookup failed at the transport or parsing level."""
    pass


class SigningError(SmartBackendError):
    """The key store or key could not be loaded, or signing failed."""
    pass


class ExchangeError(SmartBackendError):
    """Token exchange failed with a transport error or a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
