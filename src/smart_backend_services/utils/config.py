"""
Configuration management for the SMART backend services client.

Configuration is assembled once at startup from field defaults, an optional
YAML or JSON file, and the process environment (highest precedence), then
validated with Pydantic.
"""

import json
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError, validator

from smart_backend_services.exceptions import ConfigurationError
from smart_backend_services.utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]

# Environment variable -> SmartConfig field
ENVIRONMENT_VARIABLES = {
    "CLIENTID": "client_id",
    "FHIRSERVER_URL": "fhir_server_url",
    "JWT_EXP": "jwt_exp",
    "JWT_KID": "key_id",
    "JWT_ALGORITHM": "algorithm",
    "SMART_SCOPE": "scope",
    "PRIVATE_KEY_FILE": "private_key_file",
    "PUBLIC_KEY_FILE": "public_key_file",
    "JWKS_FILE": "jwks_file",
    "KEYSTORE_FILE": "keystore_file",
    "KEYSTORE_ALIAS": "keystore_alias",
    "KEYSTORE_PASSWORD": "keystore_password",
    "HTTP_TIMEOUT": "timeout_seconds",
    "HTTP_MAX_RETRIES": "max_retries",
    "LOG_LEVEL": "log_level",
}

DISABLE_VARIABLE = "SMARTONFHIR"


class SmartConfig(BaseModel):
    """Settings for SMART backend services token acquisition."""
    client_id: str = Field(default="", description="OAuth2 client identifier")
    fhir_server_url: str = Field(default="", description="Base URL of the target FHIR server")
    jwt_exp: int = Field(default=300, description="Assertion lifetime in seconds")
    disabled: bool = Field(default=False, description="Short-circuit the token manager to inactive")
    key_id: str = Field(default="", description="JWS kid header; taken from the JWKS when empty")
    algorithm: str = Field(default="RS384", description="JWS signing algorithm")
    scope: str = Field(default="system/Patient.read", description="Requested token scope")
    private_key_file: str = Field(default=".privateKey", description="PEM private key file")
    public_key_file: str = Field(default="publicKey", description="Published public key file")
    jwks_file: str = Field(default="jwks.json", description="Published JWK or JWKS file")
    keystore_file: str = Field(default="keystore.p12", description="PKCS#12 key store file")
    keystore_alias: str = Field(default="", description="Friendly name of the key store entry")
    keystore_password: SecretStr = Field(default=SecretStr("changeme"), description="Key store password")
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout in seconds")
    max_retries: int = Field(default=2, description="Retries for discovery GET requests")
    log_level: str = Field(default="INFO", description="Default log level")

    @validator("jwt_exp")
    def validate_jwt_exp(cls, v):
        """Validate assertion lifetime."""
        if v <= 0:
            raise ValueError("jwt_exp must be a positive number of seconds")
        return v

    @validator("timeout_seconds")
    def validate_timeout(cls, v):
        """Validate HTTP timeout."""
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    @validator("max_retries")
    def validate_max_retries(cls, v):
        if v < 0:
            raise ValueError("max_retries cannot be negative")
        return v

    @validator("algorithm")
    def validate_algorithm(cls, v):
        """Validate signing algorithm."""
        if v.upper() not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Algorithm must be one of {SUPPORTED_ALGORITHMS}")
        return v.upper()

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()

    @validator("client_id", "fhir_server_url", "key_id", "keystore_alias")
    def strip_whitespace(cls, v):
        return v.strip()


def load_config_from_environment(environ: Optional[Mapping[str, str]] = None) -> dict:
    """Load configuration values from environment variables."""
    environ = os.environ if environ is None else environ
    config = {}

    for variable, field in ENVIRONMENT_VARIABLES.items():
        value = environ.get(variable)
        if value:
            config[field] = value

    disabled = environ.get(DISABLE_VARIABLE)
    if disabled and disabled.lower() == "disabled":
        config["disabled"] = True

    return config


def load_config_from_file(file_path: Union[str, Path]) -> dict:
    """Load configuration values from a YAML or JSON file."""
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigurationError(f"Config file not found: {file_path}")

    with open(file_path, "r") as f:
        try:
            if file_path.suffix == ".json":
                data = json.load(f)
            elif file_path.suffix in [".yaml", ".yml"]:
                data = yaml.safe_load(f)
            else:
                raise ConfigurationError(f"Unsupported config file format: {file_path.suffix}")
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error loading config file {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {file_path} must contain a mapping")

    # Files may nest the settings under a "smart" section
    return data.get("smart", data)


def load_config(
    config_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SmartConfig:
    """Build and validate the configuration.

    Args:
        config_file: Optional YAML or JSON file with configuration values.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        Validated SmartConfig instance.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid.
    """
    config_dict: Dict[str, object] = {}

    if config_file is not None:
        config_dict.update(load_config_from_file(config_file))

    config_dict.update(load_config_from_environment(environ))

    try:
        config = SmartConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.debug(
        f"Configuration loaded (client configured: {bool(config.client_id)}, "
        f"disabled: {config.disabled})"
    )
    return config
