import json
import time
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import parse_qsl

import anyio
import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from oauth2_middleware.client.errors import ProviderError
from oauth2_middleware.client.grants import Grant, get_grant
from oauth2_middleware.client.provider import PlatformProvider
from oauth2_middleware.client.settings import ProviderSettings
from oauth2_middleware.shared.auth import AccessToken

TOKEN_URL = "https://auth.example.com/oauth2/token"
API_URL = "https://api.example.com"


class MockProvider:
    """Provider that issues numbered tokens without any network I/O."""

    def __init__(self, with_refresh_token: bool = False, expires_in: float | None = None):
        self.with_refresh_token = with_refresh_token
        self.expires_in = expires_in
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.errors: list[ProviderError] = []

    @property
    def token_url(self) -> str:
        return TOKEN_URL

    def get_headers(self, token: AccessToken | str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def get_access_token(self, grant: str | Grant, options: Mapping[str, Any] | None = None) -> AccessToken:
        self.calls.append((get_grant(grant).name, dict(options or {})))
        # let other tasks run, like a real request would
        await anyio.sleep(0)

        if self.errors:
            raise self.errors.pop(0)

        n = len(self.calls)
        return AccessToken(
            access_token=f"token-{n}",
            refresh_token=f"refresh-{n}" if self.with_refresh_token else None,
            expires_at=time.time() + self.expires_in if self.expires_in is not None else None,
        )

    @property
    def grant_types(self) -> list[str]:
        return [grant_type for grant_type, _ in self.calls]


class MockResourceServer:
    """Records requests and answers them from a handler."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response] | None = None):
        self.handler = handler or (lambda request: httpx.Response(200, json={"ok": True}))
        self.requests: list[httpx.Request] = []
        # retries send the same request object again, so headers are captured on arrival
        self.authorization_headers: list[str | None] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.authorization_headers.append(request.headers.get("Authorization"))
        return self.handler(request)


class MockTokenEndpoint:
    """Starlette app playing the provider's token endpoint and user API."""

    def __init__(self):
        self.users = {"foo": "bar"}
        self.api_tokens = {"abcdef": "123"}
        self.refresh_tokens: dict[str, str] = {}
        self.totp: str | None = None
        self.requests: list[dict[str, str]] = []
        self.tfa_headers: list[str | None] = []

        self.app = Starlette(
            routes=[
                Route("/oauth2/token", self.token, methods=["POST"]),
                Route("/users/me", self.users_me, methods=["GET"]),
            ]
        )

    async def token(self, request: Request) -> Response:
        params = dict(parse_qsl((await request.body()).decode()))
        self.requests.append(params)
        self.tfa_headers.append(request.headers.get("X-Drupal-TFA"))

        match params.get("grant_type"):
            case "password":
                if self.users.get(params.get("username", "")) != params.get("password"):
                    return self.error(401, "invalid_grant")
                if self.totp is not None and request.headers.get("X-Drupal-TFA") != self.totp:
                    return self.error(
                        400, "invalid_grant", "Two-factor authentication required", headers={"X-Drupal-TFA": "1"}
                    )
                return self.success(access_token="T1", expires_in=3600, refresh_token="R1")
            case "api_token":
                if params.get("api_token") not in self.api_tokens:
                    return self.error(401, "invalid_grant", "Invalid API token.")
                return self.success(access_token=123)
            case "refresh_token":
                if params.get("refresh_token") not in self.refresh_tokens:
                    return self.error(400, "invalid_grant", "Invalid refresh token.")
                return self.success(access_token=self.refresh_tokens[params["refresh_token"]])
            case _:
                return self.error(400, "unsupported_grant_type")

    async def users_me(self, request: Request) -> Response:
        if request.headers.get("Authorization") != "Bearer T1":
            return JSONResponse({"error": "invalid_token"}, status_code=401)
        return JSONResponse({"id": 42, "username": "foo"})

    def success(self, **body: Any) -> Response:
        return Response(json.dumps(body), status_code=200, media_type="application/json")

    @staticmethod
    def error(
        status_code: int, error: str, description: str | None = None, headers: dict[str, str] | None = None
    ) -> Response:
        body = {"error": error}
        if description:
            body["error_description"] = description
        return JSONResponse(body, status_code=status_code, headers=headers)


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def refreshing_provider():
    return MockProvider(with_refresh_token=True)


@pytest.fixture
def resource_server():
    return MockResourceServer()


@pytest.fixture
def token_endpoint():
    return MockTokenEndpoint()


@pytest.fixture
def provider_settings():
    return ProviderSettings(base_uri="https://auth.example.com", api_url=API_URL, client_id="test-client")


@pytest.fixture
async def platform_provider(token_endpoint, provider_settings):
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=token_endpoint.app))
    async with PlatformProvider(provider_settings, http_client=http_client) as provider:
        yield provider
    await http_client.aclose()
