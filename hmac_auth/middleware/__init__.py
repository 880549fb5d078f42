"""
Middleware package for HMAC connection authorization
Exports rate limiting components
"""
from .rate_limiting import (
    RateLimitConfig,
    get_rate_limit_config,
    get_client_identifier,
    create_limiter,
    custom_rate_limit_exceeded_handler,
)

__all__ = [
    "RateLimitConfig",
    "get_rate_limit_config",
    "get_client_identifier",
    "create_limiter",
    "custom_rate_limit_exceeded_handler",
]
