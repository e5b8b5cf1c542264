"""
FHIR resource parsing used during token endpoint discovery.
"""

from smart_backend_services.schemas.capability_statement import (
    find_token_endpoint,
    parse_capability_statement,
)

__all__ = ["find_token_endpoint", "parse_capability_statement"]
