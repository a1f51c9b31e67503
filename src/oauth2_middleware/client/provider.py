"""
OAuth 2.0 providers.

A provider knows the endpoints of an authorization server, how to ask its token
endpoint for a token, and how to read the answer. The middleware only talks to
providers through the ``OAuthProvider`` protocol.
"""

import logging
import secrets
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import parse_qsl, urlencode

import httpx
from pydantic import ValidationError

from oauth2_middleware.client.errors import ProviderError, TwoFactorRequiredError
from oauth2_middleware.client.grants import Grant, PasswordWithTfaGrant, get_grant
from oauth2_middleware.client.settings import PlatformSettings, ProviderSettings, replace_path
from oauth2_middleware.shared.auth import AccessToken, OAuthToken, ResourceOwner, TokenErrorResponse

logger = logging.getLogger(__name__)


class OAuthProvider(Protocol):
    """Protocol for OAuth 2.0 provider implementations."""

    @property
    def token_url(self) -> str:
        """URL of the token endpoint."""
        ...

    def build_authorization_url(self, state: str | None = None, scopes: list[str] | None = None, **params: str) -> str:
        """Build the URL to send a user to for the authorization code flow."""
        ...

    def build_token_request(self, grant: str | Grant, options: Mapping[str, Any] | None = None) -> httpx.Request:
        """Build the token endpoint request for a grant."""
        ...

    def parse_token_response(self, response: httpx.Response) -> AccessToken:
        """Read an access token from a token endpoint response, or raise ProviderError."""
        ...

    def parse_error(self, response: httpx.Response, data: dict[str, Any]) -> ProviderError | None:
        """Return the error carried by a token endpoint response, if any."""
        ...

    def get_headers(self, token: AccessToken | str) -> dict[str, str]:
        """Headers that authenticate a request with the given token."""
        ...

    async def get_access_token(self, grant: str | Grant, options: Mapping[str, Any] | None = None) -> AccessToken:
        """Request a new access token from the token endpoint."""
        ...


class GenericProvider:
    """
    Provider for a standard OAuth 2.0 authorization server.

    Token requests are sent with the provider's own ``httpx.AsyncClient``, which
    is created on first use unless one is passed in.
    """

    settings_class: type[ProviderSettings] = ProviderSettings

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
        **options: Any,
    ):
        self.settings = settings if settings is not None else self.settings_class(**options)
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self.state: str | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.timeout)
        return self._http_client

    @property
    def token_url(self) -> str:
        return self.settings.token_url

    @property
    def authorize_url(self) -> str:
        return self.settings.authorize_url

    @property
    def resource_owner_url(self) -> str:
        return replace_path(self.settings.api_url, "/users/me")

    def get_headers(self, token: AccessToken | str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def build_authorization_url(self, state: str | None = None, scopes: list[str] | None = None, **params: str) -> str:
        """
        Build the authorization URL.

        The ``state`` value is generated when not given, and kept on the
        provider so the callback can be checked against it.
        """
        self.state = state or secrets.token_urlsafe(32)

        auth_params = {"response_type": "code"}
        if self.settings.client_id:
            auth_params["client_id"] = self.settings.client_id
        auth_params["state"] = self.state
        if self.settings.redirect_uri:
            auth_params["redirect_uri"] = self.settings.redirect_uri

        scopes = scopes if scopes is not None else self.settings.scopes
        if scopes:
            auth_params["scope"] = " ".join(scopes)

        auth_params.update(params)

        return f"{self.authorize_url}?{urlencode(auth_params)}"

    def build_token_request(self, grant: str | Grant, options: Mapping[str, Any] | None = None) -> httpx.Request:
        grant = get_grant(grant)
        options = options or {}

        defaults = {
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret,
            "redirect_uri": self.settings.redirect_uri,
        }
        params = grant.prepare_request_parameters(defaults, options)

        request = httpx.Request(
            "POST",
            self.token_url,
            data=params,
            headers={"Accept": "application/json"},
        )
        return grant.prepare_request(request, options)

    def parse_error(self, response: httpx.Response, data: dict[str, Any]) -> ProviderError | None:
        if not data.get("error"):
            return None

        try:
            error = TokenErrorResponse.model_validate(data)
        except ValidationError:
            return ProviderError(str(data["error"]), status_code=response.status_code, response_body=data)

        return ProviderError(
            error.error,
            error.error_description,
            status_code=response.status_code,
            response_body=data,
        )

    def parse_token_response(self, response: httpx.Response) -> AccessToken:
        data = self._parse_body(response)

        error = self.parse_error(response, data)
        if error is not None:
            raise error

        try:
            token = OAuthToken.model_validate(data)
        except ValidationError as e:
            raise ProviderError(
                "invalid_response",
                f"Invalid token response (HTTP {response.status_code}): {e}",
                status_code=response.status_code,
                response_body=data,
            ) from e

        return AccessToken.from_response(token)

    async def get_access_token(self, grant: str | Grant, options: Mapping[str, Any] | None = None) -> AccessToken:
        request = self.build_token_request(grant, options)
        logger.debug(f"Requesting access token: grant_type={get_grant(grant).name}")

        response = await self.http_client.send(request)
        token = self.parse_token_response(response)

        logger.debug("Access token received")
        return token

    async def fetch_resource_owner(self, token: AccessToken | str) -> ResourceOwner:
        """Fetch the details of the user a token belongs to."""
        response = await self.http_client.get(self.resource_owner_url, headers=self.get_headers(token))
        response.raise_for_status()
        return ResourceOwner.model_validate(response.json())

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "GenericProvider":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    @staticmethod
    def _parse_body(response: httpx.Response) -> dict[str, Any]:
        """Parse a JSON body, falling back to a form encoded one."""
        try:
            data = response.json()
        except ValueError:
            data = dict(parse_qsl(response.text))

        return data if isinstance(data, dict) else {}


class PlatformProvider(GenericProvider):
    """
    Provider for the Platform.sh accounts service.

    Uses the Platform.sh endpoints by default and reports two-factor
    authentication challenges as ``TwoFactorRequiredError``.
    """

    settings_class = PlatformSettings

    def parse_error(self, response: httpx.Response, data: dict[str, Any]) -> ProviderError | None:
        if PasswordWithTfaGrant.requires_otp(response):
            return TwoFactorRequiredError(
                str(data.get("error") or "tfa_required"),
                data.get("error_description") or "Two-factor authentication required",
                status_code=response.status_code,
                response_body=data,
            )

        return super().parse_error(response, data)
