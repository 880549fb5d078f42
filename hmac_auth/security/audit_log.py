"""
Authentication Audit Logging

Logs:
- Incoming authentication parameters (DEBUG)
- Denied attempts with their internal reason
- Server-side configuration failures

Redacts:
- Signatures
- Secrets, passwords and tokens
"""
import re
import logging
from typing import Any, Dict, Mapping, Optional

from prometheus_client import Counter

logger = logging.getLogger(__name__)

# Prometheus metrics
auth_attempts = Counter(
    'hmac_auth_attempts_total',
    'Total number of connection authorization attempts',
    ['outcome']
)

auth_denials = Counter(
    'hmac_auth_denials_total',
    'Denied connection authorization attempts by internal reason',
    ['reason']
)


class AuthAuditLogger:
    """
    Audit logging for connection authorization with sensitive data redaction
    """

    # Patterns for sensitive data to redact
    SENSITIVE_PATTERNS = [
        (r'(?i)(password|passwd|pwd)[\s:=]+[\w\S]+', '[REDACTED PASSWORD]'),
        (r'(?i)(token|bearer)[\s:=]+[\w.-]+', '[REDACTED TOKEN]'),
        (r'(?i)(secret|secret[_-]?key)[\s:=]+[\w-]+', '[REDACTED SECRET]'),
        (r'(?i)(signature)[\s:=]+[\w+/=%-]+', '[REDACTED SIGNATURE]'),
    ]

    # Parameters to always redact
    SENSITIVE_PARAMS = [
        'signature',
        'password',
        'secret',
        'secret-key',
    ]

    def _redact_sensitive_data(self, data: str) -> str:
        redacted = data

        for pattern, replacement in self.SENSITIVE_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted)

        return redacted

    def _redact_params(self, params: Mapping[str, Any]) -> Dict[str, str]:
        """
        Redact sensitive request parameters

        Args:
            params: Request parameters

        Returns:
            Parameters with sensitive values redacted
        """
        redacted = {}

        for key, value in params.items():
            if key.lower() in self.SENSITIVE_PARAMS:
                redacted[key] = '[REDACTED]'
            else:
                redacted[key] = self._redact_sensitive_data(str(value))

        return redacted

    def log_request_params(self, params: Mapping[str, Any]) -> None:
        """Log authentication parameters at DEBUG with the signature removed"""
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Authentication attempt: {self._redact_params(params)}")

    def log_authorized(self, connection_id: str) -> None:
        auth_attempts.labels(outcome="authorized").inc()
        logger.info(f"Connection authorized: {connection_id}")

    def log_denied(
        self,
        connection_id: Optional[str],
        reason: str
    ) -> None:
        """
        Log a denied attempt

        The reason is internal diagnostics only and is never returned to the caller.
        """
        auth_attempts.labels(outcome="denied").inc()
        auth_denials.labels(reason=reason).inc()

        log_data = {
            "event": "AUTH_DENIED",
            "connection": connection_id,
            "reason": reason
        }

        logger.warning(f"Authentication denied: {self._redact_sensitive_data(str(log_data))}")

    def log_server_error(self, error: Exception) -> None:
        """Log a configuration failure that prevents any authorization"""
        auth_attempts.labels(outcome="server_error").inc()
        logger.error(
            f"Connection configuration unavailable: "
            f"{self._redact_sensitive_data(str(error))}"
        )
