"""
Key material for signing client assertions and for publication.

The private signing key comes from a PKCS#12 key store (path, alias and
password) when one is present, otherwise from a PEM private key file. The
public key and JWKS documents are read verbatim for publication.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

from cryptography.hazmat.primitives.serialization import load_pem_private_key
from cryptography.hazmat.primitives.serialization.pkcs12 import load_pkcs12

from smart_backend_services.exceptions import SigningError
from smart_backend_services.utils.logging import get_logger

logger = get_logger(__name__)


def _friendly_name(certificate) -> Optional[str]:
    if certificate is None or certificate.friendly_name is None:
        return None
    return certificate.friendly_name.decode("utf-8")


class SecretValue:
    """Container for secret values that prevents accidental printing."""

    def __init__(self, value: Any):
        self._value = value

    def get(self) -> Any:
        """Get the actual secret value."""
        return self._value

    def __repr__(self) -> str:
        return "***SECRET***"

    def __str__(self) -> str:
        return "***SECRET***"


class KeyMaterialProvider:
    """Loads the client's private key and its published public counterparts."""

    def __init__(
        self,
        private_key_file: Union[str, Path, None] = None,
        keystore_file: Union[str, Path, None] = None,
        keystore_alias: str = "",
        keystore_password: Optional[SecretValue] = None,
        public_key_file: Union[str, Path, None] = None,
        jwks_file: Union[str, Path, None] = None,
    ):
        self.private_key_file = Path(private_key_file) if private_key_file else None
        self.keystore_file = Path(keystore_file) if keystore_file else None
        self.keystore_alias = keystore_alias
        self.keystore_password = keystore_password or SecretValue(None)
        self.public_key_file = Path(public_key_file) if public_key_file else None
        self.jwks_file = Path(jwks_file) if jwks_file else None

    @classmethod
    def from_config(cls, config) -> "KeyMaterialProvider":
        """Create a provider from a SmartConfig."""
        return cls(
            private_key_file=config.private_key_file,
            keystore_file=config.keystore_file,
            keystore_alias=config.keystore_alias,
            keystore_password=SecretValue(config.keystore_password.get_secret_value()),
            public_key_file=config.public_key_file,
            jwks_file=config.jwks_file,
        )

    def has_signing_key(self) -> bool:
        """Check whether a key store or private key file is present."""
        return any(
            path is not None and path.is_file()
            for path in (self.keystore_file, self.private_key_file)
        )

    def load_signing_key(self):
        """Load the private signing key.

        Returns:
            A ``cryptography`` private key object usable by PyJWT.

        Raises:
            SigningError: If no key source exists or the key cannot be loaded.
        """
        if self.keystore_file is not None and self.keystore_file.is_file():
            return self._load_from_keystore()
        if self.private_key_file is not None and self.private_key_file.is_file():
            return self._load_from_pem()
        raise SigningError("No key store or private key file found")

    def _password_bytes(self) -> Optional[bytes]:
        password = self.keystore_password.get()
        if not password:
            return None
        return password.encode("utf-8") if isinstance(password, str) else password

    def _load_from_keystore(self):
        try:
            data = self.keystore_file.read_bytes()
            keystore = load_pkcs12(data, self._password_bytes())
        except (OSError, ValueError, TypeError) as e:
            raise SigningError(f"Unable to open key store {self.keystore_file}: {e}") from e

        # A PKCS#12 file holds at most one private key, bound to keystore.cert;
        # additional entries are certificates only.
        if self.keystore_alias:
            if _friendly_name(keystore.cert) != self.keystore_alias:
                certificate_only = {_friendly_name(cert) for cert in keystore.additional_certs}
                if self.keystore_alias in certificate_only:
                    raise SigningError(
                        f"Key store entry '{self.keystore_alias}' in {self.keystore_file} "
                        f"is a certificate without a private key"
                    )
                raise SigningError(
                    f"Key store {self.keystore_file} has no entry named '{self.keystore_alias}'"
                )

        if keystore.key is None:
            raise SigningError(f"Key store {self.keystore_file} does not contain a private key")

        logger.debug(f"Loaded signing key from key store {self.keystore_file}")
        return keystore.key

    def _load_from_pem(self):
        try:
            data = self.private_key_file.read_bytes()
            try:
                key = load_pem_private_key(data, password=None)
            except TypeError:
                # encrypted key
                key = load_pem_private_key(data, password=self._password_bytes())
        except (OSError, ValueError, TypeError) as e:
            raise SigningError(f"Unable to load private key {self.private_key_file}: {e}") from e

        logger.debug(f"Loaded signing key from {self.private_key_file}")
        return key

    def read_public_key(self) -> str:
        """Read the published public key document verbatim."""
        if self.public_key_file is None:
            raise FileNotFoundError("No public key file configured")
        return self.public_key_file.read_text()

    def read_jwks(self) -> Optional[str]:
        """Read the JWKS document.

        A file that already holds a key set is returned unmodified; a file
        holding a single JWK is wrapped as ``{"keys": [<jwk>]}``.

        Returns:
            The JWKS document, or None if the file is empty.
        """
        if self.jwks_file is None:
            raise FileNotFoundError("No JWKS file configured")

        jwk = self.jwks_file.read_text().strip()
        if not jwk:
            return None

        try:
            document = json.loads(jwk)
        except json.JSONDecodeError:
            document = None

        if isinstance(document, dict) and "keys" in document:
            return jwk

        return '{"keys": [' + jwk + "]}"

    def key_id_from_jwks(self) -> Optional[str]:
        """Return the kid of the first key in the JWKS document, if any."""
        try:
            jwks = self.read_jwks()
        except OSError as e:
            logger.debug(f"No JWKS available to read a key id from: {e}")
            return None

        if jwks is None:
            return None

        try:
            keys = json.loads(jwks).get("keys", [])
        except (json.JSONDecodeError, AttributeError):
            logger.warning(f"JWKS document {self.jwks_file} is not valid JSON")
            return None

        for key in keys:
            if isinstance(key, dict) and key.get("kid"):
                return key["kid"]
        return None
