"""
OAuth2 bearer token authentication for HTTPX.

Attaches access tokens to requests that ask for it, and retries a request once
with a new token when the server rejects the one it was sent with.
"""

import logging
from collections.abc import AsyncGenerator, Callable, Generator, Mapping
from typing import Any

import httpx

from oauth2_middleware.client.errors import OAuthFlowError, ProviderError
from oauth2_middleware.client.grants import Grant
from oauth2_middleware.client.provider import OAuthProvider
from oauth2_middleware.client.token_manager import MaybeAwaitable, OAuth2Hooks, TokenManager, call_hook
from oauth2_middleware.shared.auth import AccessToken

logger = logging.getLogger(__name__)

# Request extension that opts a request in to OAuth2 authentication
OAUTH2_EXTENSION = "oauth2"

STEP_UP_ERROR = "insufficient_user_authentication"


def is_step_up_authentication_response(response: httpx.Response) -> bool:
    """Check for a step-up authentication challenge (RFC 9470)."""
    challenge = "\n".join(response.headers.get_list("WWW-Authenticate"))
    return "bearer" in challenge.lower() and STEP_UP_ERROR in challenge


class OAuth2Middleware(httpx.Auth):
    """
    OAuth2 authentication for httpx.

    Only requests sent with the ``oauth2`` extension set are authenticated:

        client = httpx.AsyncClient(auth=OAuth2Middleware(provider, "api_token", {"api_token": "..."}))
        await client.get("https://api.example.com/me", extensions={"oauth2": True})

    Requests to the provider's token endpoint are never authenticated.
    """

    def __init__(
        self,
        provider: OAuthProvider,
        grant: str | Grant | None = None,
        grant_options: Mapping[str, Any] | None = None,
        hooks: OAuth2Hooks | None = None,
        max_auth_retries: int = 1,
    ):
        """
        Args:
            provider: The OAuth2 provider to get tokens from.
            grant: The grant used when there is no token to refresh. Defaults
                to client credentials.
            grant_options: Fixed parameters for the grant, e.g. username and password.
            hooks: Token lifecycle callbacks.
            max_auth_retries: How many times a request rejected with a 401 is
                retried with a new token.
        """
        if max_auth_retries < 0:
            raise ValueError("max_auth_retries must not be negative")

        self.provider = provider
        self.token_manager = TokenManager(provider, grant, grant_options, hooks)
        self.max_auth_retries = max_auth_retries

    @property
    def hooks(self) -> OAuth2Hooks:
        return self.token_manager.hooks

    @property
    def current_token(self) -> AccessToken | None:
        return self.token_manager.current_token

    async def get_token(self, excluding: AccessToken | None = None) -> AccessToken:
        return await self.token_manager.get_token(excluding)

    async def set_token(self, token: AccessToken) -> None:
        """Set the access token for the next requests, e.g. one restored from storage."""
        await self.token_manager.set_token(token)

    def set_token_save_callback(self, callback: Callable[[AccessToken], MaybeAwaitable[None]]) -> None:
        self._replace_hooks(on_token_save=callback)

    def set_on_refresh_start(self, callback: Callable[[str], MaybeAwaitable[AccessToken | None]]) -> None:
        self._replace_hooks(on_refresh_start=callback)

    def set_on_refresh_end(self, callback: Callable[[str], MaybeAwaitable[None]]) -> None:
        self._replace_hooks(on_refresh_end=callback)

    def set_on_refresh_error(self, callback: Callable[[ProviderError], MaybeAwaitable[AccessToken | None]]) -> None:
        self._replace_hooks(on_refresh_error=callback)

    def set_on_step_up_auth_response(self, callback: Callable[[httpx.Response], MaybeAwaitable[AccessToken]]) -> None:
        self._replace_hooks(on_step_up_auth_response=callback)

    def _replace_hooks(self, **changes: Any) -> None:
        self.token_manager.hooks = self.token_manager.hooks.replace(**changes)

    def is_oauth2(self, request: httpx.Request) -> bool:
        """Check if a request is configured to use OAuth2."""
        if not request.extensions.get(OAUTH2_EXTENSION):
            return False

        # Never authenticate requests for an access token
        return request.url != httpx.URL(self.provider.token_url)

    def authenticate_request(self, request: httpx.Request, token: AccessToken) -> httpx.Request:
        request.headers.update(self.provider.get_headers(token))
        return request

    def sync_auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        if self.is_oauth2(request):
            raise RuntimeError("OAuth2Middleware only supports httpx.AsyncClient")
        yield request

    async def async_auth_flow(self, request: httpx.Request) -> AsyncGenerator[httpx.Request, httpx.Response]:
        """HTTPX auth flow integration."""
        if not self.is_oauth2(request):
            yield request
            return

        # The body is sent again on retry
        await request.aread()

        token = await self.token_manager.get_token()
        self.authenticate_request(request, token)

        response = yield request

        retries = 0
        while response.status_code == 401 and retries < self.max_auth_retries:
            retries += 1

            step_up_hook = self.hooks.on_step_up_auth_response
            if step_up_hook is not None and is_step_up_authentication_response(response):
                logger.debug("Step-up authentication required")
                await response.aread()
                token = await call_hook(step_up_hook, response)
                if not isinstance(token, AccessToken):
                    raise OAuthFlowError("Step-up authentication hook did not return an access token")
                await self.token_manager.set_token(token)
            else:
                # Consider the old token invalid, and get a new one
                logger.debug("Request was rejected with a 401, retrying with a new access token")
                token = await self.token_manager.get_token(excluding=token)

            self.authenticate_request(request, token)
            response = yield request
