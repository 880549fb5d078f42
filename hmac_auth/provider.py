"""
HMAC authentication provider

Adapter between the authorization core and a host that keeps user sessions.
A session either carries the configurations it was authorized for or it
does not; the provider never infers ownership from object identity.
"""
import logging
from typing import Callable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from hmac_auth.config import VerificationContext
from hmac_auth.models.connection import ConfigStore, RequestFields
from hmac_auth.security.authenticator import AuthorizationResult, HmacAuthenticator

logger = logging.getLogger(__name__)

PROVIDER_IDENTIFIER = "hmac-auth-config"


class AuthenticationServerError(Exception):
    """Authorization could not run because the server is misconfigured"""


class AuthenticatedUser(BaseModel):
    """A caller whose signed request was accepted"""
    identifier: str = Field(description="Username if supplied, otherwise a random id")
    credentials: RequestFields
    configurations: Optional[ConfigStore] = Field(
        default=None,
        description="Configurations this session is authorized to use, if carried"
    )

    class Config:
        frozen = True


class UserContext(BaseModel):
    """Configurations visible to one user"""
    provider: str = PROVIDER_IDENTIFIER
    username: str
    configurations: ConfigStore

    class Config:
        frozen = True


def _identifier_for(credentials: RequestFields) -> str:
    if credentials.username:
        return credentials.username
    return str(uuid4())


class HmacAuthenticationProvider:
    """
    Authenticate users from signed connection requests
    """

    identifier = PROVIDER_IDENTIFIER

    def __init__(
        self,
        context: VerificationContext,
        load_store: Callable[[], ConfigStore],
        clock: Optional[Callable[[], int]] = None
    ):
        """
        Initialize provider

        Args:
            context: Verification settings built at startup
            load_store: Returns a fresh ConfigStore on every call
            clock: Current time in epoch milliseconds (for tests)
        """
        self.load_store = load_store
        self.authenticator = HmacAuthenticator(context, clock=clock)

    def get_authorized_configurations(self, credentials: RequestFields) -> AuthorizationResult:
        """Run the authorization decision for a set of credentials"""
        return self.authenticator.authorize(credentials, self.load_store)

    def _authorized_store(self, credentials: RequestFields) -> Optional[ConfigStore]:
        result = self.get_authorized_configurations(credentials)

        if result.server_error:
            raise AuthenticationServerError("Connection configuration could not be read.")

        if not result.authorized:
            return None

        return result.configurations

    def authenticate_user(self, credentials: RequestFields) -> Optional[AuthenticatedUser]:
        """
        Authenticate a new session

        Returns:
            The authenticated user, or None if the request is not authorized

        Raises:
            AuthenticationServerError: If the configuration source is unusable
        """
        configurations = self._authorized_store(credentials)
        if configurations is None:
            return None

        return AuthenticatedUser(
            identifier=_identifier_for(credentials),
            credentials=credentials,
            configurations=configurations
        )

    def update_authenticated_user(
        self,
        user: AuthenticatedUser,
        credentials: RequestFields
    ) -> Optional[AuthenticatedUser]:
        """
        Re-authorize a returning user against the current configuration file

        The configuration is re-read on every refresh so edits take effect
        without restarting the server.
        """
        configurations = self._authorized_store(credentials)
        if configurations is None:
            return None

        return AuthenticatedUser(
            identifier=user.identifier,
            credentials=credentials,
            configurations=configurations
        )

    def _configurations_for(self, user: AuthenticatedUser) -> Optional[ConfigStore]:
        # Sessions carrying their own authorization are trusted as-is
        if user.configurations is not None:
            return user.configurations

        return self._authorized_store(user.credentials)

    def get_user_context(self, user: AuthenticatedUser) -> Optional[UserContext]:
        """
        Build the user context restricted to the user's authorized configurations

        Returns:
            The user context, or None if the user is no longer authorized
        """
        configurations = self._configurations_for(user)
        if configurations is None:
            logger.debug(f"No authorized configurations for user {user.identifier}")
            return None

        return UserContext(username=user.identifier, configurations=configurations)

    def update_user_context(self, user: AuthenticatedUser) -> Optional[UserContext]:
        """Rebuild the user context after a session refresh"""
        return self.get_user_context(user)
