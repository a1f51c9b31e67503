from oauth2_middleware.client.auth import OAUTH2_EXTENSION, OAuth2Middleware
from oauth2_middleware.client.errors import (
    MissingGrantParameterError,
    OAuthFlowError,
    ProtocolViolationError,
    ProviderError,
    TwoFactorRequiredError,
    UnknownGrantError,
)
from oauth2_middleware.client.grants import (
    ApiTokenGrant,
    AuthorizationCodeGrant,
    ClientCredentialsGrant,
    Grant,
    PasswordGrant,
    PasswordWithTfaGrant,
    RefreshTokenGrant,
)
from oauth2_middleware.client.provider import GenericProvider, OAuthProvider, PlatformProvider
from oauth2_middleware.client.settings import PlatformSettings, ProviderSettings
from oauth2_middleware.client.token_manager import OAuth2Hooks, TokenManager
from oauth2_middleware.shared.auth import AccessToken

__all__ = [
    "OAUTH2_EXTENSION",
    "AccessToken",
    "ApiTokenGrant",
    "AuthorizationCodeGrant",
    "ClientCredentialsGrant",
    "GenericProvider",
    "Grant",
    "MissingGrantParameterError",
    "OAuth2Hooks",
    "OAuth2Middleware",
    "OAuthFlowError",
    "OAuthProvider",
    "PasswordGrant",
    "PasswordWithTfaGrant",
    "PlatformProvider",
    "PlatformSettings",
    "ProtocolViolationError",
    "ProviderError",
    "ProviderSettings",
    "RefreshTokenGrant",
    "TokenManager",
    "TwoFactorRequiredError",
    "UnknownGrantError",
]
