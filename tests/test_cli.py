import json
from unittest.mock import AsyncMock

import pytest
from click.testing import CliRunner

from oauth2_middleware.cli import main
from oauth2_middleware.client.errors import ProviderError, TwoFactorRequiredError
from oauth2_middleware.client.grants import PasswordWithTfaGrant
from oauth2_middleware.client.provider import PlatformProvider
from oauth2_middleware.shared.auth import AccessToken


@pytest.fixture
def get_access_token(monkeypatch):
    mock = AsyncMock(return_value=AccessToken(access_token="T1", refresh_token="R1"))
    monkeypatch.setattr(PlatformProvider, "get_access_token", mock)
    return mock


def test_api_token(get_access_token):
    result = CliRunner().invoke(main, ["--grant", "api_token", "--api-token", "abcdef"])

    assert result.exit_code == 0
    assert json.loads(result.output)["access_token"] == "T1"
    grant, options = get_access_token.await_args.args
    assert grant.name == "api_token"
    assert options == {"api_token": "abcdef"}


def test_password_prompts_for_two_factor_code(get_access_token):
    get_access_token.side_effect = [
        TwoFactorRequiredError("invalid_grant", "Two-factor authentication required"),
        AccessToken(access_token="T1"),
    ]

    result = CliRunner().invoke(main, ["--username", "foo", "--password", "bar"], input="123456\n")

    assert result.exit_code == 0
    assert get_access_token.await_count == 2
    grant, options = get_access_token.await_args.args
    assert isinstance(grant, PasswordWithTfaGrant)
    assert options == {"username": "foo", "password": "bar", "totp": "123456"}


def test_provider_error(get_access_token):
    get_access_token.side_effect = ProviderError("invalid_grant", "Invalid credentials.")

    result = CliRunner().invoke(main, ["--username", "foo", "--password", "bar2"])

    assert result.exit_code == 1
    assert "Invalid credentials. (invalid_grant)" in result.output
