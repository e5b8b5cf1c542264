"""
CapabilityStatement parsing and token endpoint lookup.

Servers publish CapabilityStatements of varying completeness and FHIR
version, so the document as a whole is read leniently: only undecodable JSON
or a different resource type is rejected. The security extensions that carry
the token endpoint are validated one by one with the fhir.resources R4B
Extension model, and invalid ones are skipped.
"""

import json
from typing import Iterator, Optional, Union

from fhir.resources.R4B.extension import Extension

from smart_backend_services.utils.logging import get_logger

logger = get_logger(__name__)

RESOURCE_TYPE = "CapabilityStatement"
TOKEN_EXTENSION_URL = "token"
OAUTH_URIS_EXTENSION_URL = "http://fhir-registry.smarthealthit.org/StructureDefinition/oauth-uris"


def parse_capability_statement(document: Union[str, bytes, dict]) -> dict:
    """Decode a CapabilityStatement from JSON text or a decoded dictionary.

    Missing elements and properties unknown to R4 are tolerated.

    Raises:
        ValueError: If the document is not JSON or not a CapabilityStatement.
    """
    if not isinstance(document, dict):
        document = json.loads(document)

    if not isinstance(document, dict) or document.get("resourceType") != RESOURCE_TYPE:
        resource_type = document.get("resourceType") if isinstance(document, dict) else None
        raise ValueError(f"Expected a {RESOURCE_TYPE} resource, got {resource_type!r}")

    return document


def _security_extensions(capability_statement: dict) -> Iterator[list]:
    rest_entries = capability_statement.get("rest")
    if not isinstance(rest_entries, list):
        return

    for rest in rest_entries:
        security = rest.get("security") if isinstance(rest, dict) else None
        if not isinstance(security, dict):
            continue

        extensions = []
        for raw_extension in security.get("extension") or []:
            try:
                extensions.append(Extension.parse_obj(raw_extension))
            except (ValueError, TypeError) as e:
                logger.debug(f"Skipping invalid security extension: {e}")
        yield extensions


def _extension_uri(extensions, url: str) -> Optional[str]:
    for extension in extensions or []:
        if extension.url == url and extension.valueUri:
            return str(extension.valueUri)
    return None


def find_token_endpoint(capability_statement: dict) -> Optional[str]:
    """Find the OAuth2 token endpoint advertised in ``rest[].security``.

    A ``token`` extension directly on the security component wins; otherwise
    the nested ``token`` entry of the SMART ``oauth-uris`` extension is used.
    """
    for extensions in _security_extensions(capability_statement):
        token_url = _extension_uri(extensions, TOKEN_EXTENSION_URL)
        if token_url:
            return token_url

        for extension in extensions:
            if extension.url == OAUTH_URIS_EXTENSION_URL:
                token_url = _extension_uri(extension.extension, TOKEN_EXTENSION_URL)
                if token_url:
                    return token_url

    logger.debug("CapabilityStatement does not advertise a token endpoint")
    return None
