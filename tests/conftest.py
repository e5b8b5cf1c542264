"""
Common test fixtures for the SMART backend services tests.
"""

import datetime
import json
import time

import pytest
import responses
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID
from jwt.algorithms import RSAAlgorithm

from smart_backend_services.domain.bindings import ClientIdentity
from smart_backend_services.security.keys import KeyMaterialProvider, SecretValue
from smart_backend_services.utils.config import SmartConfig

FHIR_SERVER_URL = "https://fhir.example.org/r4"
TOKEN_ENDPOINT = "https://auth.example.org/token"
FALLBACK_TOKEN_ENDPOINT = "https://auth2.example.org/token"
SMART_CONFIGURATION_URL = FHIR_SERVER_URL + "/.well-known/smart-configuration"
METADATA_URL = FHIR_SERVER_URL + "/metadata"

CLIENT_ID = "test-client"
KEY_ID = "test-kid"
KEYSTORE_ALIAS = "smart-test"
KEYSTORE_PASSWORD = "changeme"


def capability_statement(token_endpoint=None, oauth_uris=False):
    """Build a minimal R4 CapabilityStatement, optionally advertising a token endpoint."""
    security = {"service": [{"text": "SMART-on-FHIR"}]}
    if token_endpoint and oauth_uris:
        security["extension"] = [{
            "url": "http://fhir-registry.smarthealthit.org/StructureDefinition/oauth-uris",
            "extension": [
                {"url": "authorize", "valueUri": "https://auth.example.org/authorize"},
                {"url": "token", "valueUri": token_endpoint},
            ],
        }]
    elif token_endpoint:
        security["extension"] = [{"url": "token", "valueUri": token_endpoint}]

    return {
        "resourceType": "CapabilityStatement",
        "status": "active",
        "date": "2024-01-01",
        "kind": "instance",
        "fhirVersion": "4.0.1",
        "format": ["json"],
        "rest": [{"mode": "server", "security": security}],
    }


def token_response(access_token="abc", expires_in=300):
    return json.dumps({
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": expires_in,
        "scope": "system/Patient.read",
    })


class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start=None):
        self.now = float(int(time.time())) if start is None else start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def key_files(tmp_path, rsa_private_key):
    """Write a PEM key, a PKCS#12 key store, a public key and a JWK to disk."""
    public_key = rsa_private_key.public_key()

    private_key_file = tmp_path / "private.pem"
    private_key_file.write_bytes(rsa_private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))

    public_key_file = tmp_path / "public.pem"
    public_key_file.write_bytes(public_key.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ))

    jwk = json.loads(RSAAlgorithm.to_jwk(public_key))
    jwk.update({"kid": KEY_ID, "alg": "RS384", "use": "sig"})
    jwks_file = tmp_path / "jwk.json"
    jwks_file.write_text(json.dumps(jwk))

    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "smart-test")])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(rsa_private_key, hashes.SHA256())
    )
    keystore_file = tmp_path / "keystore.p12"
    keystore_file.write_bytes(pkcs12.serialize_key_and_certificates(
        KEYSTORE_ALIAS.encode("utf-8"),
        rsa_private_key,
        certificate,
        None,
        serialization.BestAvailableEncryption(KEYSTORE_PASSWORD.encode("utf-8")),
    ))

    return {
        "private_key_file": private_key_file,
        "public_key_file": public_key_file,
        "jwks_file": jwks_file,
        "keystore_file": keystore_file,
    }


@pytest.fixture
def key_provider(key_files):
    """Provider backed by the PEM private key only."""
    return KeyMaterialProvider(
        private_key_file=key_files["private_key_file"],
        public_key_file=key_files["public_key_file"],
        jwks_file=key_files["jwks_file"],
    )


@pytest.fixture
def identity(key_provider):
    return ClientIdentity(client_id=CLIENT_ID, key_provider=key_provider, key_id=KEY_ID)


@pytest.fixture
def smart_config(key_files, tmp_path):
    """Config pointing at the generated key material, without a key store."""
    return SmartConfig(
        client_id=CLIENT_ID,
        fhir_server_url=FHIR_SERVER_URL,
        private_key_file=str(key_files["private_key_file"]),
        public_key_file=str(key_files["public_key_file"]),
        jwks_file=str(key_files["jwks_file"]),
        keystore_file=str(tmp_path / "missing.p12"),
        max_retries=0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mocked_responses():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def smart_server(mocked_responses):
    """Register a FHIR server whose SMART configuration advertises TOKEN_ENDPOINT."""
    mocked_responses.add(
        responses.GET,
        SMART_CONFIGURATION_URL,
        json={"token_endpoint": TOKEN_ENDPOINT, "grant_types_supported": ["client_credentials"]},
    )
    return mocked_responses


def keystore_provider(key_files, alias=KEYSTORE_ALIAS, password=KEYSTORE_PASSWORD):
    return KeyMaterialProvider(
        keystore_file=key_files["keystore_file"],
        keystore_alias=alias,
        keystore_password=SecretValue(password),
        jwks_file=key_files["jwks_file"],
    )
