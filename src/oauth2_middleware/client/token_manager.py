"""
Access token cache and acquisition.

The token manager holds at most one current access token. It hands that token
out until it expires or is reported as rejected, then replaces it, through a
refresh grant when the token carries a refresh token and through the primary
grant otherwise.
"""

import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

import anyio
import httpx

from oauth2_middleware.client.errors import ProviderError
from oauth2_middleware.client.grants import ClientCredentialsGrant, Grant, RefreshTokenGrant, get_grant
from oauth2_middleware.client.provider import OAuthProvider
from oauth2_middleware.shared.auth import AccessToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

MaybeAwaitable = Union[T, Awaitable[T]]


@dataclass(frozen=True)
class OAuth2Hooks:
    """
    Optional callbacks around the token lifecycle.

    Every callback may be a plain function or a coroutine function.

    Attributes:
        on_token_save: Called with every token that becomes current, e.g. to persist it.
        on_refresh_start: Called with the refresh token before a refresh. Returning
            an AccessToken skips the refresh request and uses that token instead.
        on_refresh_end: Called with the refresh token once a refresh is over,
            whether it succeeded or not.
        on_refresh_error: Called with the ProviderError of a failed refresh. May
            return an AccessToken to use instead of raising the error.
        on_step_up_auth_response: Called with a 401 response carrying an RFC 9470
            ``insufficient_user_authentication`` challenge. Must return the
            AccessToken to retry the request with.
    """

    on_token_save: Callable[[AccessToken], MaybeAwaitable[None]] | None = None
    on_refresh_start: Callable[[str], MaybeAwaitable[AccessToken | None]] | None = None
    on_refresh_end: Callable[[str], MaybeAwaitable[None]] | None = None
    on_refresh_error: Callable[[ProviderError], MaybeAwaitable[AccessToken | None]] | None = None
    on_step_up_auth_response: Callable[[httpx.Response], MaybeAwaitable[AccessToken]] | None = None

    def replace(self, **changes: Any) -> "OAuth2Hooks":
        """Return a copy with some callbacks replaced."""
        return dataclasses.replace(self, **changes)


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a hook, awaiting its result if it is awaitable."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class TokenManager:
    """Caches the current access token and acquires new ones from the provider."""

    def __init__(
        self,
        provider: OAuthProvider,
        grant: str | Grant | None = None,
        grant_options: Mapping[str, Any] | None = None,
        hooks: OAuth2Hooks | None = None,
    ):
        self.provider = provider
        self.grant = get_grant(grant) if grant is not None else ClientCredentialsGrant()
        self.grant_options = dict(grant_options or {})
        self.hooks = hooks or OAuth2Hooks()

        self._token: AccessToken | None = None
        self._lock = anyio.Lock()

    @property
    def current_token(self) -> AccessToken | None:
        return self._token

    async def get_token(self, excluding: AccessToken | None = None) -> AccessToken:
        """
        Get the current access token, or a new one.

        Args:
            excluding: A token to consider invalid, typically the one a request
                was just rejected with. Compared by identity.

        Raises:
            ProviderError: If a new token is needed and cannot be acquired.
        """
        async with self._lock:
            token = self._token
            if token is not None and not token.has_expired() and (excluding is None or token is not excluding):
                return token

            if token is None:
                logger.debug("No access token yet, acquiring one")
            elif token is excluding:
                logger.debug("Access token was rejected, acquiring a new one")
            else:
                logger.debug("Access token expired, acquiring a new one")

            new_token = await self.acquire()
            await self.set_token(new_token)
            return new_token

    async def acquire(self) -> AccessToken:
        """
        Acquire a new access token, without installing it.

        Refreshes the current token when it has a refresh token, and uses the
        primary grant otherwise.
        """
        token = self._token
        if token is not None and token.refresh_token:
            return await self._refresh(token.refresh_token)

        logger.debug(f"Acquiring access token with the {self.grant.name} grant")
        return await self.provider.get_access_token(self.grant, self.grant_options)

    async def set_token(self, token: AccessToken) -> None:
        """Install a token as the current one and save it."""
        self._token = token
        if self.hooks.on_token_save is not None:
            await call_hook(self.hooks.on_token_save, token)

    async def _refresh(self, refresh_token: str) -> AccessToken:
        logger.debug("Refreshing access token")
        try:
            if self.hooks.on_refresh_start is not None:
                result = await call_hook(self.hooks.on_refresh_start, refresh_token)
                if isinstance(result, AccessToken):
                    logger.debug("Refresh start hook supplied an access token")
                    return result

            return await self.provider.get_access_token(RefreshTokenGrant(), {"refresh_token": refresh_token})
        except ProviderError as e:
            if self.hooks.on_refresh_error is not None:
                fallback = await call_hook(self.hooks.on_refresh_error, e)
                if fallback:
                    logger.debug("Refresh error hook supplied an access token")
                    return fallback
            logger.warning(f"Token refresh failed: {e.error}")
            raise
        finally:
            if self.hooks.on_refresh_end is not None:
                await call_hook(self.hooks.on_refresh_end, refresh_token)
