"""
Rate limiting for the connection authorization endpoint
Slows down signature guessing with per-IP limits using in-memory storage

NOTE: Counters live in application memory and reset on server restart.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import os
import logging
from pydantic import BaseModel, Field
from prometheus_client import Counter

logger = logging.getLogger(__name__)

# Prometheus metrics
rate_limit_exceeded = Counter(
    'hmac_auth_rate_limit_exceeded_total',
    'Total number of rate limit violations',
    ['endpoint']
)


class RateLimitConfig(BaseModel):
    """
    Rate limiting configuration with validation
    """
    enabled: bool = Field(
        default=True,
        description="Enable/disable rate limiting globally"
    )
    default_limit: str = Field(
        default="100/minute",
        description="Default rate limit for all endpoints"
    )
    authorize_limit: str = Field(
        default="30/minute",
        description="Rate limit for the connection authorization endpoint"
    )
    status_limit: str = Field(
        default="60/minute",
        description="Rate limit for /status endpoint"
    )


def get_rate_limit_config() -> RateLimitConfig:
    """
    Load rate limit configuration from environment
    """
    return RateLimitConfig(
        enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
        default_limit=os.getenv("RATE_LIMIT_DEFAULT", "100/minute"),
        authorize_limit=os.getenv("RATE_LIMIT_AUTHORIZE", "30/minute"),
        status_limit=os.getenv("RATE_LIMIT_STATUS", "60/minute")
    )


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting
    Uses X-Forwarded-For header if behind proxy, otherwise remote IP
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in chain is the original client
        client_ip = forwarded_for.split(",")[0].strip()
    else:
        client_ip = get_remote_address(request)

    logger.debug(f"Rate limit check for client: {client_ip}")
    return client_ip


def create_limiter(config: RateLimitConfig) -> Limiter:
    """Create an in-memory limiter for one application instance"""
    logger.info(
        f"Initializing in-memory rate limiting "
        f"(enabled={config.enabled}, authorize={config.authorize_limit})"
    )
    return Limiter(
        key_func=get_client_identifier,
        default_limits=[config.default_limit],
        headers_enabled=True,
        enabled=config.enabled
    )


async def custom_rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Rate limit exceeded handler with a generic 429 body
    """
    rate_limit_exceeded.labels(endpoint=request.url.path).inc()

    logger.warning(
        f"Rate limit exceeded for {get_client_identifier(request)} "
        f"on {request.url.path}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "status_code": 429,
            "message": "Too many requests"
        },
        headers={"Retry-After": "60"}
    )
