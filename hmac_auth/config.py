"""
Process-wide settings for HMAC authentication

VerificationContext is built once at startup and passed explicitly into
every authorization call. Nothing reads the environment after startup.
"""
import hashlib
import logging
import os
from typing import Optional, Tuple

from pydantic import BaseModel, Field, validator

logger = logging.getLogger(__name__)

# Ten minutes in milliseconds
DEFAULT_TIMESTAMP_AGE_LIMIT = 10 * 60 * 1000

DEFAULT_SIGNED_PARAMETERS = ("hostname", "port")

# Wire-compatibility setting: signers must use the same hash
DEFAULT_HASH_ALGORITHM = "sha1"

DEFAULT_GUACAMOLE_HOME = "/etc/guacamole"
DEFAULT_HMAC_CONFIG = "hmac-config.xml"


class SettingsError(Exception):
    """Startup configuration is missing or invalid"""


class MissingSettingError(SettingsError):
    """A required setting was not provided"""


class InvalidSettingError(SettingsError):
    """A setting was provided with an unusable value"""


class VerificationContext(BaseModel):
    """
    Read-only verification settings shared by all authorization calls
    """
    shared_secret: bytes = Field(repr=False, description="HMAC key")
    server_id: str = Field(description="Identifier of this server, bound into every signature")
    timestamp_age_limit: int = Field(
        default=DEFAULT_TIMESTAMP_AGE_LIMIT,
        description="Maximum timestamp age in milliseconds (0 disables expiry)"
    )
    signed_parameter_names: Tuple[str, ...] = Field(
        default=DEFAULT_SIGNED_PARAMETERS,
        description="Parameters included in the signed message, in order"
    )
    hash_algorithm: str = Field(
        default=DEFAULT_HASH_ALGORITHM,
        description="hashlib name of the HMAC digest"
    )

    @validator('server_id')
    def validate_server_id(cls, v):
        if not v:
            raise ValueError("server_id must be a non-empty string")
        return v

    @validator('timestamp_age_limit')
    def validate_age_limit(cls, v):
        if v < 0:
            raise ValueError("timestamp_age_limit must be non-negative")
        return v

    @validator('hash_algorithm')
    def validate_hash_algorithm(cls, v):
        v = v.lower()
        try:
            hashlib.new(v)
        except ValueError:
            raise ValueError(f"Unsupported hash algorithm: {v}")
        return v

    @property
    def expiry_enabled(self) -> bool:
        return self.timestamp_age_limit != 0

    class Config:
        frozen = True  # Immutable


class AppSettings(BaseModel):
    """Settings for the HTTP surface and configuration source"""
    config_file: str = Field(description="Path of the connection configuration XML file")
    cache_config: bool = Field(default=False, description="Reuse the parsed file until it changes")
    debug: bool = Field(default=False, description="Include sanitized error details in responses")

    class Config:
        frozen = True


def _parse_list(value: str) -> Tuple[str, ...]:
    return tuple(v.strip() for v in value.split(",") if v.strip())


def get_verification_context() -> VerificationContext:
    """
    Load the verification context from environment variables.

    Reads from:
    - HMAC_SECRET_KEY: Shared secret (required)
    - HMAC_SERVER_ID: Server identifier (required)
    - HMAC_TIMESTAMP_AGE_LIMIT: Milliseconds, default 600000, 0 disables expiry
    - HMAC_SIGNED_PARAMETERS: Comma-separated parameter names
    - HMAC_HASH_ALGORITHM: Digest name, default sha1

    Raises:
        MissingSettingError: If a required setting is absent
        InvalidSettingError: If a setting cannot be used
    """
    secret_key = os.getenv("HMAC_SECRET_KEY")
    if not secret_key:
        raise MissingSettingError("HMAC_SECRET_KEY must be set")

    server_id = os.getenv("HMAC_SERVER_ID")
    if not server_id:
        raise MissingSettingError("HMAC_SERVER_ID must be set")

    raw_limit = os.getenv("HMAC_TIMESTAMP_AGE_LIMIT")
    if raw_limit is None or raw_limit.strip() == "":
        age_limit = DEFAULT_TIMESTAMP_AGE_LIMIT
    else:
        try:
            age_limit = int(raw_limit)
        except ValueError:
            raise InvalidSettingError(
                f"HMAC_TIMESTAMP_AGE_LIMIT must be an integer, got {raw_limit!r}"
            )

    signed_parameters = DEFAULT_SIGNED_PARAMETERS
    raw_parameters = os.getenv("HMAC_SIGNED_PARAMETERS")
    if raw_parameters:
        signed_parameters = _parse_list(raw_parameters)

    try:
        context = VerificationContext(
            shared_secret=secret_key.encode("utf-8"),
            server_id=server_id,
            timestamp_age_limit=age_limit,
            signed_parameter_names=signed_parameters,
            hash_algorithm=os.getenv("HMAC_HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM),
        )
    except ValueError as e:
        raise InvalidSettingError(str(e)) from e

    if not context.expiry_enabled:
        logger.warning("Timestamp expiry is disabled (HMAC_TIMESTAMP_AGE_LIMIT=0)")

    logger.info(
        f"HMAC verification configured for server {context.server_id} "
        f"(age limit {context.timestamp_age_limit} ms, hash {context.hash_algorithm})"
    )
    return context


def get_app_settings() -> AppSettings:
    """
    Load HTTP and configuration-source settings from environment variables.

    Reads from:
    - HMAC_CONFIG_FILE: Explicit path of the XML configuration
    - GUACAMOLE_HOME: Directory holding hmac-config.xml when no path is given
    - HMAC_CONFIG_CACHE: "true" to reuse the parsed file until it changes
    - HMAC_DEBUG: "true" to include sanitized error details in responses
    """
    config_file: Optional[str] = os.getenv("HMAC_CONFIG_FILE")
    if not config_file:
        home = os.getenv("GUACAMOLE_HOME", DEFAULT_GUACAMOLE_HOME)
        config_file = os.path.join(home, DEFAULT_HMAC_CONFIG)

    return AppSettings(
        config_file=config_file,
        cache_config=os.getenv("HMAC_CONFIG_CACHE", "false").lower() == "true",
        debug=os.getenv("HMAC_DEBUG", "false").lower() == "true",
    )
