"""
Security module for HMAC connection authorization
Signature verification, configuration loading and safe error handling
"""
from .signature import SignatureVerifier, build_message
from .config_loader import (
    ConfigStoreError,
    ConfigFileSource,
    CachedConfigSource,
    load_config_file,
    parse_config_xml,
)
from .authenticator import (
    AuthOutcome,
    AuthorizationResult,
    DenialReason,
    HmacAuthenticator,
    current_time_millis,
)
from .audit_log import AuthAuditLogger
from .error_handler import SafeErrorHandler
from .signed_url import create_signed_request, create_signed_url

__all__ = [
    "SignatureVerifier",
    "build_message",
    "ConfigStoreError",
    "ConfigFileSource",
    "CachedConfigSource",
    "load_config_file",
    "parse_config_xml",
    "AuthOutcome",
    "AuthorizationResult",
    "DenialReason",
    "HmacAuthenticator",
    "current_time_millis",
    "AuthAuditLogger",
    "SafeErrorHandler",
    "create_signed_request",
    "create_signed_url",
]
