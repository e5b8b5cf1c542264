"""
SMART backend services token management.

This module obtains OAuth2 access tokens with the client credentials grant,
authenticating with a signed JWT assertion, and caches one token per FHIR
server so that repeated calls and switches between known servers cost no
extra round-trips.
"""

import json
import threading
import time
from typing import Callable, Optional
from urllib.parse import urlparse

import jwt
import requests
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from smart_backend_services.domain.bindings import BindingStore, ClientIdentity, ServerBinding
from smart_backend_services.exceptions import (
    DiscoveryError,
    ExchangeError,
    NotConfiguredError,
    SigningError,
)
from smart_backend_services.infrastructure.api_clients.discovery import EndpointResolver
from smart_backend_services.infrastructure.api_clients.http_transport import HttpTransport
from smart_backend_services.security.keys import KeyMaterialProvider
from smart_backend_services.utils.logging import LogMetrics, get_logger, log_with_context

logger = get_logger(__name__)

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
SUCCESS_STATUSES = (200, 201)


def is_http_url(url: Optional[str]) -> bool:
    """Check that a URL is non-empty and uses the http or https scheme."""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class TokenManager:
    """Produces currently valid access tokens for a target FHIR server.

    A single re-entrant lock guards target switching, the cache check, the
    token exchange and the cache update, so concurrent callers never perform
    redundant exchanges for the same binding.
    """

    def __init__(
        self,
        identity: Optional[ClientIdentity] = None,
        resolver: Optional[EndpointResolver] = None,
        transport: Optional[HttpTransport] = None,
        store: Optional[BindingStore] = None,
        key_provider: Optional[KeyMaterialProvider] = None,
        disabled: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the manager. No network I/O happens here.

        Args:
            identity: Signing identity; the manager stays inactive without one.
            resolver: Endpoint resolver; built on ``transport`` if omitted.
            transport: HTTP transport for the token exchange.
            store: Binding store; a private one is created if omitted.
            key_provider: Source of the published key documents; defaults to
                the identity's provider.
            disabled: Permanently refuse token requests.
            clock: Returns the current time in epoch seconds.
        """
        self.identity = identity
        self.transport = transport or HttpTransport()
        self.resolver = resolver or EndpointResolver(self.transport)
        self.store = store if store is not None else BindingStore()
        self.key_provider = key_provider or (identity.key_provider if identity else None)
        self.disabled = disabled
        self._clock = clock
        self._lock = threading.RLock()
        self._current_url: Optional[str] = None
        self._active = False

    @property
    def is_active(self) -> bool:
        """True when token requests may proceed to the network."""
        if self.disabled or self.identity is None or not self.identity.client_id:
            return False
        return self._active and self._current_url is not None

    @property
    def fhir_server_url(self) -> Optional[str]:
        return self._current_url

    @property
    def current_binding(self) -> Optional[ServerBinding]:
        if self._current_url is None:
            return None
        return self.store.get(self._current_url)

    @property
    def token_endpoint(self) -> Optional[str]:
        binding = self.current_binding
        return binding.token_endpoint if binding else None

    def set_target_server(self, fhir_server_url: str) -> bool:
        """Make ``fhir_server_url`` the server tokens are requested for.

        Known servers are adopted from the binding store without any network
        call; unknown servers have their token endpoint resolved first.

        Args:
            fhir_server_url: Base URL of the FHIR server.

        Returns:
            True if the server is now the current target, False if the URL
            was rejected or the manager is disabled.

        Raises:
            DiscoveryError: If the token endpoint of a new server cannot be
                resolved. The previous target and its binding are untouched
                but the manager becomes inactive.
        """
        with self._lock:
            if self.disabled:
                logger.info("SMART backend services are disabled; ignoring target server change")
                return False

            if not is_http_url(fhir_server_url):
                logger.debug(f"Not a valid FHIR server URL: {fhir_server_url!r}")
                self._active = False
                return False

            if fhir_server_url == self._current_url and self._active:
                logger.debug(f"Already targeting FHIR server {fhir_server_url}")
                return True

            if fhir_server_url not in self.store:
                try:
                    token_endpoint = self.resolver.resolve_token_endpoint(fhir_server_url)
                except DiscoveryError as e:
                    self._active = False
                    log_with_context(
                        logger, "warning",
                        "Token endpoint resolution failed; token manager is inactive",
                        fhir_server_url=fhir_server_url, error=str(e),
                    )
                    raise
                self.store.add(ServerBinding(fhir_server_url, token_endpoint))

            self._current_url = fhir_server_url
            self._active = True
            log_with_context(
                logger, "info", "Target FHIR server set",
                fhir_server_url=fhir_server_url, token_endpoint=self.token_endpoint,
            )
            return True

    def _require_binding(self) -> ServerBinding:
        binding = self.current_binding
        if binding is None:
            raise NotConfiguredError("No FHIR server has been targeted")
        return binding

    def build_signed_assertion(self) -> str:
        """Build the signed JWT assertion for the current token endpoint.

        Raises:
            NotConfiguredError: If there is no identity or target server.
            SigningError: If the signing key cannot be loaded or used.
        """
        with self._lock:
            if self.identity is None:
                raise NotConfiguredError("No client identity configured")
            binding = self._require_binding()

            now = self._clock()
            issued_at = int(now)
            claims = {
                "iss": self.identity.client_id,
                "sub": self.identity.client_id,
                "aud": binding.token_endpoint,
                "iat": issued_at,
                "exp": issued_at + self.identity.assertion_lifetime,
                "jti": str(int(now * 1000)),
            }
            headers = {"typ": "JWT"}
            if self.identity.key_id:
                headers["kid"] = self.identity.key_id

            key = self.identity.key_provider.load_signing_key()
            try:
                return jwt.encode(claims, key, algorithm=self.identity.algorithm, headers=headers)
            except (jwt.PyJWTError, ValueError, TypeError, NotImplementedError) as e:
                raise SigningError(f"Failed to sign client assertion: {e}") from e

    def get_access_token(self, token_endpoint: Optional[str] = None) -> Optional[str]:
        """Get a currently valid token response for the target server.

        Args:
            token_endpoint: Optional endpoint overriding the resolved one for
                this exchange. Ignored while a cached token is fresh.

        Returns:
            The raw token response body, or None if the exchange failed and
            the caller should retry later.

        Raises:
            NotConfiguredError: If the manager is inactive or disabled.
            SigningError: If the assertion cannot be signed.
        """
        with self._lock:
            if not self.is_active:
                logger.info("SMART backend services are not configured to run")
                raise NotConfiguredError("SMART backend services are not configured to run")

            binding = self._require_binding()
            if binding.is_fresh(self._clock()):
                logger.debug(f"Using cached token for {binding.fhir_server_url}")
                return binding.cached_token

            endpoint = token_endpoint or binding.token_endpoint
            assertion = self.build_signed_assertion()

            try:
                body, expires_in = self._exchange(endpoint, assertion)
            except ExchangeError as e:
                log_with_context(
                    logger, "warning", "Token exchange failed",
                    token_endpoint=endpoint, status_code=e.status_code, error=str(e),
                )
                return None

            binding.store_token(body, self._clock() + expires_in)
            log_with_context(
                logger, "info", "Obtained new access token",
                fhir_server_url=binding.fhir_server_url, expires_in=expires_in,
            )
            return body

    def _exchange(self, token_endpoint: str, assertion: str):
        data = {
            "grant_type": "client_credentials",
            "scope": self.identity.scope,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": assertion,
        }

        try:
            with LogMetrics(logger, "token exchange", token_endpoint=token_endpoint):
                response = self.transport.post_form(token_endpoint, data)
        except requests.RequestException as e:
            raise ExchangeError(f"Token request to {token_endpoint} failed: {e}") from e

        if response.status_code not in SUCCESS_STATUSES:
            raise ExchangeError(
                f"Token endpoint returned HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            expires_in = int(response.json()["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise ExchangeError(
                f"Token response has no usable expires_in: {e}",
                status_code=response.status_code,
            ) from e

        if expires_in <= 0:
            raise ExchangeError(
                f"Token response has a non-positive expires_in: {expires_in}",
                status_code=response.status_code,
            )

        return response.text, expires_in

    def get_bearer_token(self, token_endpoint: Optional[str] = None) -> Optional[str]:
        """Like get_access_token, but return only the ``access_token`` value."""
        body = self.get_access_token(token_endpoint)
        if body is None:
            return None
        return json.loads(body).get("access_token")

    def invalidate_token(self) -> None:
        """Drop the current server's cached token, e.g. after a 401."""
        with self._lock:
            binding = self.current_binding
            if binding is not None:
                binding.clear_token()

    def get_public_key(self) -> str:
        """Return the published public key document."""
        if self.key_provider is None:
            raise NotConfiguredError("No key material configured")
        return self.key_provider.read_public_key()

    def get_jwks(self) -> Optional[str]:
        """Return the published JWKS document."""
        if self.key_provider is None:
            raise NotConfiguredError("No key material configured")
        return self.key_provider.read_jwks()


def create_token_manager(
    config,
    store: Optional[BindingStore] = None,
    transport: Optional[HttpTransport] = None,
    clock: Callable[[], float] = time.time,
) -> TokenManager:
    """Create a token manager from a validated SmartConfig.

    The configured FHIR server, if any, is targeted immediately; a discovery
    failure is logged and leaves the manager inactive.
    """
    transport = transport or HttpTransport.from_config(config)
    key_provider = KeyMaterialProvider.from_config(config)

    identity = None
    if config.disabled:
        logger.info("SMART backend services disabled by configuration")
    elif not config.client_id:
        logger.warning("No client id configured; token manager is inactive")
    elif not key_provider.has_signing_key():
        logger.warning("No key store or private key file found; token manager is inactive")
    else:
        identity = ClientIdentity.from_config(config, key_provider)

    manager = TokenManager(
        identity=identity,
        transport=transport,
        store=store,
        key_provider=key_provider,
        disabled=config.disabled,
        clock=clock,
    )

    if config.fhir_server_url and not config.disabled:
        try:
            manager.set_target_server(config.fhir_server_url)
        except DiscoveryError as e:
            logger.error(f"Could not resolve the token endpoint of {config.fhir_server_url}: {e}")

    return manager


def get_token_with_retry(
    manager: TokenManager,
    attempts: int = 3,
    initial_wait: float = 1.0,
    max_wait: float = 10.0,
    token_endpoint: Optional[str] = None,
) -> Optional[str]:
    """Get a token, retrying with exponential backoff while none is available.

    Configuration and signing errors are raised immediately.

    Returns:
        The raw token response body, or None once all attempts are used.
    """
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial_wait, max=max_wait),
        retry=retry_if_result(lambda result: result is None),
        retry_error_callback=lambda retry_state: None,
    )
    return retrying(manager.get_access_token, token_endpoint)
