"""
Unit tests for CapabilityStatement parsing.
"""

import json

import pytest

from smart_backend_services.schemas.capability_statement import (
    find_token_endpoint,
    parse_capability_statement,
)

from conftest import TOKEN_ENDPOINT, capability_statement


class TestCapabilityStatement:
    """Tests for the token endpoint lookup."""

    def test_parse_from_text(self):
        parsed = parse_capability_statement(json.dumps(capability_statement(TOKEN_ENDPOINT)))
        assert find_token_endpoint(parsed) == TOKEN_ENDPOINT

    def test_parse_from_dict(self):
        parsed = parse_capability_statement(capability_statement(TOKEN_ENDPOINT))
        assert find_token_endpoint(parsed) == TOKEN_ENDPOINT

    def test_oauth_uris_extension(self):
        parsed = parse_capability_statement(capability_statement(TOKEN_ENDPOINT, oauth_uris=True))
        assert find_token_endpoint(parsed) == TOKEN_ENDPOINT

    def test_direct_token_extension_wins(self):
        document = capability_statement("https://direct.example.org/token")
        document["rest"][0]["security"]["extension"].append({
            "url": "http://fhir-registry.smarthealthit.org/StructureDefinition/oauth-uris",
            "extension": [{"url": "token", "valueUri": "https://nested.example.org/token"}],
        })

        parsed = parse_capability_statement(document)
        assert find_token_endpoint(parsed) == "https://direct.example.org/token"

    def test_later_rest_entry(self):
        document = capability_statement(TOKEN_ENDPOINT)
        document["rest"].insert(0, {"mode": "client"})

        assert find_token_endpoint(parse_capability_statement(document)) == TOKEN_ENDPOINT

    def test_no_security(self):
        document = capability_statement()
        del document["rest"][0]["security"]

        assert find_token_endpoint(parse_capability_statement(document)) is None

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            parse_capability_statement("{not json")

    def test_other_resource_type(self):
        with pytest.raises(ValueError):
            parse_capability_statement({"resourceType": "OperationOutcome"})

    def test_json_array(self):
        with pytest.raises(ValueError):
            parse_capability_statement("[]")

    def test_missing_date_still_found(self):
        document = capability_statement(TOKEN_ENDPOINT)
        del document["date"]

        assert find_token_endpoint(parse_capability_statement(document)) == TOKEN_ENDPOINT

    def test_unknown_properties_tolerated(self):
        document = capability_statement(TOKEN_ENDPOINT)
        document["acceptUnknown"] = "no"
        document["vendorField"] = {"tier": "gold"}
        document["rest"][0]["security"]["cors"] = True

        assert find_token_endpoint(parse_capability_statement(document)) == TOKEN_ENDPOINT

    def test_invalid_extension_skipped(self):
        document = capability_statement(TOKEN_ENDPOINT)
        document["rest"][0]["security"]["extension"].insert(0, {"valueUri": "https://no-url.example.org"})

        assert find_token_endpoint(parse_capability_statement(document)) == TOKEN_ENDPOINT

    def test_bare_statement_has_no_endpoint(self):
        assert find_token_endpoint(parse_capability_statement({"resourceType": "CapabilityStatement"})) is None
