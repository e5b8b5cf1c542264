"""
Token state kept per FHIR server and the client identity used to sign for it.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from smart_backend_services.security.keys import KeyMaterialProvider

# Cached tokens are not reused during the last seconds of their lifetime.
EXPIRY_MARGIN_SECONDS = 15


@dataclass
class ServerBinding:
    """Resolved token endpoint and cached token for one FHIR server."""
    fhir_server_url: str
    token_endpoint: str
    cached_token: Optional[str] = None
    expires_at: float = 0

    def __post_init__(self):
        if not self.token_endpoint:
            raise ValueError(f"Binding for {self.fhir_server_url} needs a token endpoint")

    def is_fresh(self, now: float, margin: float = EXPIRY_MARGIN_SECONDS) -> bool:
        """True if the cached token may still be presented at ``now``."""
        return bool(self.cached_token) and now < self.expires_at - margin

    def store_token(self, token: str, expires_at: float) -> None:
        if expires_at <= 0:
            raise ValueError("A cached token needs a positive expiry")
        self.cached_token = token
        self.expires_at = expires_at

    def clear_token(self) -> None:
        self.cached_token = None
        self.expires_at = 0


class BindingStore:
    """Owns the FHIR server URL -> ServerBinding map."""

    def __init__(self):
        self._bindings: Dict[str, ServerBinding] = {}

    def get(self, fhir_server_url: str) -> Optional[ServerBinding]:
        return self._bindings.get(fhir_server_url)

    def add(self, binding: ServerBinding) -> ServerBinding:
        """Insert a binding, keeping an existing one for the same URL."""
        return self._bindings.setdefault(binding.fhir_server_url, binding)

    def __contains__(self, fhir_server_url: str) -> bool:
        return fhir_server_url in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)


@dataclass(frozen=True)
class ClientIdentity:
    """Immutable signing identity of this client."""
    client_id: str
    key_provider: KeyMaterialProvider
    key_id: Optional[str] = None
    assertion_lifetime: int = 300
    algorithm: str = "RS384"
    scope: str = "system/Patient.read"

    @classmethod
    def from_config(cls, config, key_provider: KeyMaterialProvider) -> "ClientIdentity":
        """Build the identity, taking the kid from the JWKS when not configured."""
        key_id = config.key_id or key_provider.key_id_from_jwks()
        return cls(
            client_id=config.client_id,
            key_provider=key_provider,
            key_id=key_id,
            assertion_lifetime=config.jwt_exp,
            algorithm=config.algorithm,
            scope=config.scope,
        )
