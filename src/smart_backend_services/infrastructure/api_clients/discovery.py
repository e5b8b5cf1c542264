"""
Token endpoint discovery for SMART on FHIR servers.

The SMART configuration document (``.well-known/smart-configuration``) is
tried first. Whenever it does not produce an endpoint, the server's
CapabilityStatement (``metadata``) is consulted.
"""

from typing import Optional

import requests

from smart_backend_services.exceptions import EndpointNotFoundError, ResolutionFailedError
from smart_backend_services.infrastructure.api_clients.http_transport import (
    FHIR_JSON_ACCEPT,
    HttpTransport,
)
from smart_backend_services.schemas.capability_statement import (
    find_token_endpoint,
    parse_capability_statement,
)
from smart_backend_services.utils.logging import get_logger, log_with_context

logger = get_logger(__name__)

SMART_CONFIGURATION_PATH = ".well-known/smart-configuration"
METADATA_PATH = "metadata"


def normalize_base_url(fhir_server_url: str) -> str:
    """Return the base URL with exactly one trailing slash."""
    return fhir_server_url.rstrip("/") + "/"


class EndpointResolver:
    """Maps a FHIR server base URL to its OAuth2 token endpoint."""

    def __init__(self, transport: Optional[HttpTransport] = None):
        self.transport = transport or HttpTransport()

    def resolve_token_endpoint(self, fhir_server_url: str) -> str:
        """Discover the token endpoint of a FHIR server.

        Args:
            fhir_server_url: Base URL of the FHIR server.

        Returns:
            The token endpoint URL.

        Raises:
            EndpointNotFoundError: If neither document advertises an endpoint.
            ResolutionFailedError: If the CapabilityStatement could not be
                fetched or parsed.
        """
        base_url = normalize_base_url(fhir_server_url)

        token_endpoint = self._from_smart_configuration(base_url)
        if token_endpoint:
            log_with_context(
                logger, "info", "Resolved token endpoint from SMART configuration",
                fhir_server_url=fhir_server_url, token_endpoint=token_endpoint,
            )
            return token_endpoint

        token_endpoint = self._from_capability_statement(base_url, fhir_server_url)
        if token_endpoint:
            log_with_context(
                logger, "info", "Resolved token endpoint from CapabilityStatement",
                fhir_server_url=fhir_server_url, token_endpoint=token_endpoint,
            )
            return token_endpoint

        raise EndpointNotFoundError(
            f"No token endpoint advertised by {fhir_server_url}",
            fhir_server_url=fhir_server_url,
        )

    def _from_smart_configuration(self, base_url: str) -> Optional[str]:
        url = base_url + SMART_CONFIGURATION_PATH
        try:
            response = self.transport.get(url, headers={"Accept": FHIR_JSON_ACCEPT})
            if not response.ok:
                logger.info(f"SMART configuration unavailable at {url} (HTTP {response.status_code})")
                return None
            smart_configuration = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.info(f"SMART configuration lookup failed at {url}: {e}")
            return None

        if not isinstance(smart_configuration, dict):
            logger.info(f"SMART configuration at {url} is not a JSON object")
            return None

        token_endpoint = smart_configuration.get("token_endpoint")
        if not isinstance(token_endpoint, str) or not token_endpoint:
            logger.info(f"SMART configuration at {url} has no token_endpoint")
            return None

        return token_endpoint

    def _from_capability_statement(self, base_url: str, fhir_server_url: str) -> Optional[str]:
        url = base_url + METADATA_PATH
        try:
            response = self.transport.get(url, headers={"Accept": FHIR_JSON_ACCEPT})
            response.raise_for_status()
        except requests.RequestException as e:
            raise ResolutionFailedError(
                f"Fetching CapabilityStatement from {url} failed: {e}",
                fhir_server_url=fhir_server_url,
            ) from e

        try:
            capability_statement = parse_capability_statement(response.content)
        except ValueError as e:
            raise ResolutionFailedError(
                f"Unparsable CapabilityStatement at {url}: {e}",
                fhir_server_url=fhir_server_url,
            ) from e

        return find_token_endpoint(capability_statement)
