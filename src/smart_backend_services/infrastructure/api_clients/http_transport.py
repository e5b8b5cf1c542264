"""
HTTP transport used for discovery and token exchange.

Wraps a ``requests.Session`` that applies a request timeout to every call.
Discovery GETs are retried on transient statuses; token POSTs never are.
"""

from typing import Dict, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from smart_backend_services.utils.logging import get_logger

logger = get_logger(__name__)

FHIR_JSON_ACCEPT = "application/fhir+json, application/json+fhir;q=0.9, application/json;q=0.8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class HttpTransport:
    """Blocking HTTP transport with a conservative request timeout."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the transport.

        Args:
            timeout: Timeout in seconds applied to every request.
            max_retries: Retries for GET requests on 429/5xx responses.
            retry_backoff_factor: Backoff factor between GET retries.
            session: Optional preconfigured session.
        """
        self.timeout = timeout
        self.session = session or requests.Session()

        retry_strategy = Retry(
            total=max_retries,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
            backoff_factor=retry_backoff_factor,
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    @classmethod
    def from_config(cls, config) -> "HttpTransport":
        return cls(timeout=config.timeout_seconds, max_retries=config.max_retries)

    def get(self, url: str, headers: Optional[Mapping[str, str]] = None) -> requests.Response:
        """Issue a GET request.

        Raises:
            requests.RequestException: On connection errors and timeouts.
        """
        logger.debug(f"GET {url}")
        return self.session.get(url, headers=dict(headers or {}), timeout=self.timeout)

    def post_form(
        self,
        url: str,
        data: Dict[str, str],
        headers: Optional[Mapping[str, str]] = None,
    ) -> requests.Response:
        """Issue a form-encoded POST request.

        Raises:
            requests.RequestException: On connection errors and timeouts.
        """
        request_headers = {
            "Content-Type": FORM_CONTENT_TYPE,
            "Accept": "application/json",
        }
        request_headers.update(headers or {})

        logger.debug(f"POST {url}")
        return self.session.post(url, data=data, headers=request_headers, timeout=self.timeout)
