"""
Safe Error Responses

Prevents:
- Revealing which authorization check failed
- Secret or signature leakage in error messages
- Stack trace exposure
"""
import re
import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from hmac_auth.security.authenticator import AuthOutcome

logger = logging.getLogger(__name__)


class SafeErrorHandler:
    """
    Translate authorization failures into opaque responses
    """

    # Patterns to redact from error messages (pattern, replacement)
    SENSITIVE_PATTERNS = [
        (r'/[\w/.-]+\.(py|xml)', '[REDACTED_FILE]'),
        (r'line \d+', '[REDACTED_LINE]'),
        (r'(?i)(secret|secret[_-]?key)[\s:=]+[\w-]+', '[REDACTED_SECRET]'),
        (r'(?i)(signature)[\s:=]+[\w+/=%-]+', '[REDACTED_SIGNATURE]'),
        (r'(?i)(password|passwd|pwd)[\s:=]+[\w\S]+', '[REDACTED_PASSWORD]'),
    ]

    # Generic error messages by status code
    GENERIC_MESSAGES = {
        403: "Forbidden",
        429: "Too many requests",
        500: "Internal server error",
    }

    # Status codes for non-successful outcomes
    OUTCOME_STATUS = {
        AuthOutcome.DENIED: 403,
        AuthOutcome.SERVER_ERROR: 500,
    }

    def __init__(self, debug_mode: bool = False):
        """
        Initialize error handler

        Args:
            debug_mode: If True, include sanitized error details (dev only)
        """
        self.debug_mode = debug_mode

    def outcome_response(self, outcome: AuthOutcome) -> JSONResponse:
        """
        Build the response for a denied or failed authorization

        The denial reason is never included, even in debug mode.

        Raises:
            ValueError: If the outcome is not a failure
        """
        status_code = self.OUTCOME_STATUS.get(outcome)
        if status_code is None:
            raise ValueError(f"No error response for outcome {outcome.value}")
        return JSONResponse(
            status_code=status_code,
            content=self._create_safe_response(None, status_code)
        )

    def handle_error(
        self,
        error: Exception,
        status_code: int = 500,
        request: Request = None
    ) -> JSONResponse:
        """
        Handle error and return sanitized response

        Args:
            error: The exception that occurred
            status_code: HTTP status code
            request: The request that caused the error

        Returns:
            Sanitized JSON error response
        """
        self._log_error_securely(error, status_code, request)

        return JSONResponse(
            status_code=status_code,
            content=self._create_safe_response(error, status_code)
        )

    def _create_safe_response(
        self,
        error: Optional[Exception],
        status_code: int
    ) -> Dict[str, Any]:
        response = {
            "error": True,
            "status_code": status_code,
            "message": self.GENERIC_MESSAGES.get(status_code, "An error occurred"),
        }

        if self.debug_mode and error is not None:
            response["debug_message"] = self._sanitize_message(str(error))

        return response

    def _sanitize_message(self, message: str) -> str:
        sanitized = message

        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized)

        return sanitized

    def _log_error_securely(
        self,
        error: Exception,
        status_code: int,
        request: Request = None
    ) -> None:
        log_data = {
            "status_code": status_code,
            "error_type": type(error).__name__,
            "error_message": self._sanitize_message(str(error)),
        }

        if request:
            log_data.update({
                "method": request.method,
                "path": request.url.path,
            })

        if status_code >= 500:
            logger.error(f"Server error: {log_data}")
        else:
            logger.warning(f"Client error: {log_data}")

        if self.debug_mode and status_code >= 500:
            logger.debug(f"Stack trace: {self._sanitize_message(traceback.format_exc())}")
