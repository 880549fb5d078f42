"""
HTTP surface for signed connection authorization

Run with:
    uvicorn --factory hmac_auth.main:create_app
"""
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from logging import getLogger
from prometheus_client import make_asgi_app
from slowapi.errors import RateLimitExceeded
from typing import Callable, Optional

from hmac_auth.config import (
    AppSettings,
    SettingsError,
    VerificationContext,
    get_app_settings,
    get_verification_context,
)
from hmac_auth.middleware.rate_limiting import (
    RateLimitConfig,
    create_limiter,
    custom_rate_limit_exceeded_handler,
    get_rate_limit_config,
)
from hmac_auth.models.connection import ConfigStore, RequestFields
from hmac_auth.provider import AuthenticationServerError, HmacAuthenticationProvider
from hmac_auth.security import (
    AuthAuditLogger,
    AuthOutcome,
    CachedConfigSource,
    ConfigFileSource,
    SafeErrorHandler,
)

logger = getLogger(__name__)


def create_config_source(settings: AppSettings) -> Callable[[], ConfigStore]:
    """Pick the configuration loader described by the settings"""
    if settings.cache_config:
        return CachedConfigSource(settings.config_file)
    return ConfigFileSource(settings.config_file)


def create_app(
    context: Optional[VerificationContext] = None,
    settings: Optional[AppSettings] = None,
    load_store: Optional[Callable[[], ConfigStore]] = None,
    rate_limit_config: Optional[RateLimitConfig] = None,
    clock: Optional[Callable[[], int]] = None
) -> FastAPI:
    """
    Build the FastAPI application

    Settings not passed explicitly are read from the environment once, here.

    Raises:
        SettingsError: If a required setting such as HMAC_SECRET_KEY is missing
    """
    try:
        context = context or get_verification_context()
    except SettingsError as e:
        logger.error(f"Cannot start HMAC authentication: {e}")
        raise

    settings = settings or get_app_settings()
    rate_limit_config = rate_limit_config or get_rate_limit_config()
    load_store = load_store or create_config_source(settings)

    provider = HmacAuthenticationProvider(context, load_store, clock=clock)
    audit = AuthAuditLogger()
    error_handler = SafeErrorHandler(debug_mode=settings.debug)
    limiter = create_limiter(rate_limit_config)

    app = FastAPI(title="HMAC connection authorization")

    # Required by slowapi
    app.state.limiter = limiter
    app.state.provider = provider
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_exceeded_handler)

    # Mount Prometheus metrics endpoint
    app.mount("/metrics", make_asgi_app())

    @app.get("/status", response_class=JSONResponse)
    @limiter.limit(rate_limit_config.status_limit)
    def status(request: Request, response: Response):
        return {"status": "ok", "provider": provider.identifier}

    @app.get("/api/connections/authorize")
    @limiter.limit(rate_limit_config.authorize_limit)
    def authorize(request: Request, response: Response):
        """
        Authorize a signed connection request

        Query parameters: connection, timestamp, signature (and optional username).
        Denials are indistinguishable from each other; the reason is only logged.
        """
        audit.log_request_params(request.query_params)
        credentials = RequestFields.from_params(request.query_params)

        try:
            user = provider.authenticate_user(credentials)
        except AuthenticationServerError as e:
            return error_handler.handle_error(e, 500, request)

        if user is None:
            return error_handler.outcome_response(AuthOutcome.DENIED)

        return {
            "identifier": user.identifier,
            "connections": {
                name: configuration.to_dict()
                for name, configuration in user.configurations.configurations.items()
            }
        }

    return app
