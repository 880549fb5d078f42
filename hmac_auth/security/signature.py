"""
Connection Signature Verification
Proves a connection request was produced by a holder of the shared secret

Canonical message (order is the wire contract shared with signers):
    timestamp + protocol + server_id + name + value (per signed parameter present)

HMAC digest defaults to SHA-1 for compatibility with existing signers.
"""
import base64
import binascii
import hmac
import logging
from typing import Iterable, Optional

from hmac_auth.config import DEFAULT_HASH_ALGORITHM
from hmac_auth.models.connection import Configuration

logger = logging.getLogger(__name__)


def build_message(
    timestamp: Optional[str],
    configuration: Configuration,
    server_id: str,
    signed_parameter_names: Iterable[str]
) -> str:
    """
    Build the canonical message for a configuration

    Args:
        timestamp: Decimal timestamp exactly as the signer sent it
        configuration: Configuration the request claims access to
        server_id: Identifier of this server
        signed_parameter_names: Parameter names in fixed policy order

    Returns:
        Message string to be signed
    """
    parts = [timestamp or "", configuration.protocol, server_id]

    # Parameters missing from the configuration contribute nothing
    for name in signed_parameter_names:
        value = configuration.get_parameter(name)
        if value is None:
            continue
        parts.append(name)
        parts.append(value)

    return "".join(parts)


class SignatureVerifier:
    """
    Compute and verify HMAC signatures over canonical messages
    """

    def __init__(self, secret_key: bytes, hash_algorithm: str = DEFAULT_HASH_ALGORITHM):
        """
        Initialize signature verifier

        Args:
            secret_key: Shared secret used as the HMAC key (any length)
            hash_algorithm: hashlib digest name used by both signer and verifier
        """
        if isinstance(secret_key, str):
            secret_key = secret_key.encode("utf-8")
        self.secret_key = secret_key
        self.hash_algorithm = hash_algorithm

    def compute_signature(self, message: str) -> bytes:
        """
        Compute the raw HMAC of a message

        Args:
            message: Canonical message (UTF-8 encoded before hashing)

        Returns:
            HMAC digest bytes
        """
        return hmac.new(
            self.secret_key,
            message.encode("utf-8"),
            self.hash_algorithm
        ).digest()

    def sign(self, message: str) -> str:
        """
        Sign a message the way clients are expected to

        Returns:
            Base64-encoded HMAC signature
        """
        return base64.b64encode(self.compute_signature(message)).decode("ascii")

    def verify_signature(self, signature: Optional[str], message: str) -> bool:
        """
        Verify a base64 signature against a message

        Malformed signatures are reported as a mismatch, never raised.

        Args:
            signature: Base64-encoded signature supplied by the caller
            message: Canonical message rebuilt on the server

        Returns:
            True if the signature authenticates the message
        """
        if signature is None:
            return False

        try:
            provided = base64.b64decode(signature, validate=True)
        except (binascii.Error, ValueError):
            logger.debug("Signature is not valid base64")
            return False

        expected = self.compute_signature(message)

        # Constant-time comparison to prevent timing attacks
        return hmac.compare_digest(provided, expected)
