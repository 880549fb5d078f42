"""
Signed connection links
Signer-side helpers for portals that hand users a pre-authorized connection
"""
from typing import Dict, Optional
from urllib.parse import quote, urlencode

from hmac_auth.config import VerificationContext
from hmac_auth.models.connection import (
    CONNECTION_PARAM,
    SIGNATURE_PARAM,
    TIMESTAMP_PARAM,
    Configuration,
)
from hmac_auth.security.authenticator import current_time_millis
from hmac_auth.security.signature import SignatureVerifier, build_message


def create_signed_request(
    connection_name: str,
    configuration: Configuration,
    context: VerificationContext,
    timestamp: Optional[int] = None
) -> Dict[str, str]:
    """
    Create the request parameters for a signed connection

    Args:
        connection_name: Name of the connection on the server
        configuration: Configuration as stored on the server
        context: Secret, server id and signed parameter policy
        timestamp: Epoch milliseconds (current time if not provided)

    Returns:
        Mapping of timestamp, connection and signature parameters
    """
    if timestamp is None:
        timestamp = current_time_millis()

    message = build_message(
        str(timestamp),
        configuration,
        context.server_id,
        context.signed_parameter_names
    )
    signer = SignatureVerifier(context.shared_secret, context.hash_algorithm)

    return {
        TIMESTAMP_PARAM: str(timestamp),
        CONNECTION_PARAM: connection_name,
        SIGNATURE_PARAM: signer.sign(message),
    }


def create_signed_url(
    base_url: str,
    connection_name: str,
    configuration: Configuration,
    context: VerificationContext,
    timestamp: Optional[int] = None
) -> str:
    """
    Create a client link carrying a signed connection request

    Example:
        >>> create_signed_url("http://guacamole.local:8080/guacamole", "test-pc", config, context)
        'http://guacamole.local:8080/guacamole/#/client/test-pc?timestamp=...&connection=test-pc&signature=...'
    """
    params = create_signed_request(connection_name, configuration, context, timestamp)
    query = urlencode(params, quote_via=quote)

    return f"{base_url.rstrip('/')}/#/client/{quote(connection_name, safe='')}?{query}"
