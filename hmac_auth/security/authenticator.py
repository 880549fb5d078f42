"""
Connection Authorization
End-to-end decision for a signed connection request

Every failed check collapses into the same DENIED outcome. The internal
reason is kept on the result for logging only. A configuration source that
cannot be loaded is reported as SERVER_ERROR, never as a denial.
"""
import re
import time
import logging
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, Field

from hmac_auth.config import VerificationContext
from hmac_auth.models.connection import ConfigStore, RequestFields
from hmac_auth.security.audit_log import AuthAuditLogger
from hmac_auth.security.config_loader import ConfigStoreError
from hmac_auth.security.signature import SignatureVerifier, build_message

logger = logging.getLogger(__name__)

# Signed 64-bit epoch milliseconds
_DECIMAL_TIMESTAMP = re.compile(r"-?[0-9]{1,19}")


def current_time_millis() -> int:
    """Current time as epoch milliseconds"""
    return int(time.time() * 1000)


class AuthOutcome(str, Enum):
    """Externally observable authorization outcomes"""
    AUTHORIZED = "authorized"
    DENIED = "denied"
    SERVER_ERROR = "server_error"


class DenialReason(str, Enum):
    """Internal diagnostics for denied attempts"""
    MISSING_SIGNATURE = "missing_signature"
    MISSING_CONNECTION = "missing_connection"
    MISSING_TIMESTAMP = "missing_timestamp"
    MALFORMED_TIMESTAMP = "malformed_timestamp"
    STALE_TIMESTAMP = "stale_timestamp"
    UNKNOWN_CONNECTION = "unknown_connection"
    SIGNATURE_MISMATCH = "signature_mismatch"


class AuthorizationResult(BaseModel):
    """Result of one authorization call"""
    outcome: AuthOutcome
    configurations: Optional[ConfigStore] = Field(
        default=None,
        description="Single-entry store of the authorized connection"
    )
    reason: Optional[DenialReason] = Field(
        default=None,
        description="Why the request was denied (internal only)"
    )

    @property
    def authorized(self) -> bool:
        return self.outcome == AuthOutcome.AUTHORIZED

    @property
    def denied(self) -> bool:
        return self.outcome == AuthOutcome.DENIED

    @property
    def server_error(self) -> bool:
        return self.outcome == AuthOutcome.SERVER_ERROR

    class Config:
        frozen = True


class HmacAuthenticator:
    """
    Authorize connection requests signed with the shared secret
    """

    def __init__(
        self,
        context: VerificationContext,
        clock: Optional[Callable[[], int]] = None,
        audit: Optional[AuthAuditLogger] = None
    ):
        """
        Initialize authenticator

        Args:
            context: Verification settings shared by all calls
            clock: Returns the current time in epoch milliseconds
            audit: Audit logger for outcomes
        """
        self.context = context
        self.clock = clock or current_time_millis
        self.audit = audit or AuthAuditLogger()
        self.verifier = SignatureVerifier(context.shared_secret, context.hash_algorithm)

    def check_timestamp(self, timestamp: Optional[str]) -> Optional[DenialReason]:
        """
        Apply the freshness policy

        Only the age is bounded; timestamps ahead of server time are accepted.

        Returns:
            None if the timestamp is fresh, otherwise the denial reason
        """
        if not self.context.expiry_enabled:
            return None

        if timestamp is None:
            return DenialReason.MISSING_TIMESTAMP

        if not _DECIMAL_TIMESTAMP.fullmatch(timestamp):
            return DenialReason.MALFORMED_TIMESTAMP

        if int(timestamp) + self.context.timestamp_age_limit <= self.clock():
            return DenialReason.STALE_TIMESTAMP

        return None

    def _deny(self, fields: RequestFields, reason: DenialReason) -> AuthorizationResult:
        self.audit.log_denied(fields.connection_id, reason.value)
        return AuthorizationResult(outcome=AuthOutcome.DENIED, reason=reason)

    def authorize(
        self,
        fields: RequestFields,
        load_store: Callable[[], ConfigStore]
    ) -> AuthorizationResult:
        """
        Decide whether a request may use the connection it names

        Args:
            fields: Caller-supplied connection, timestamp and signature
            load_store: Returns a freshly loaded ConfigStore or raises ConfigStoreError

        Returns:
            AUTHORIZED with a single-entry store, DENIED, or SERVER_ERROR
        """
        try:
            store = load_store()
        except ConfigStoreError as e:
            self.audit.log_server_error(e)
            return AuthorizationResult(outcome=AuthOutcome.SERVER_ERROR)

        if fields.signature is None:
            return self._deny(fields, DenialReason.MISSING_SIGNATURE)

        if fields.connection_id is None:
            return self._deny(fields, DenialReason.MISSING_CONNECTION)

        reason = self.check_timestamp(fields.timestamp)
        if reason is not None:
            return self._deny(fields, reason)

        configuration = store.lookup(fields.connection_id)
        if configuration is None:
            return self._deny(fields, DenialReason.UNKNOWN_CONNECTION)

        message = build_message(
            fields.timestamp,
            configuration,
            self.context.server_id,
            self.context.signed_parameter_names
        )

        if not self.verifier.verify_signature(fields.signature, message):
            return self._deny(fields, DenialReason.SIGNATURE_MISMATCH)

        self.audit.log_authorized(fields.connection_id)

        # Only the requested connection is returned
        return AuthorizationResult(
            outcome=AuthOutcome.AUTHORIZED,
            configurations=store.narrow(fields.connection_id)
        )
