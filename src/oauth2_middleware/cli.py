"""
Command line access token acquisition.

Usage:
    oauth2-token --grant password --username foo@example.com
    OAUTH2_BASE_URI=https://auth.example.com oauth2-token --grant api_token --api-token abcdef
"""

import logging
import sys
from typing import Any

import anyio
import click

from oauth2_middleware.client.errors import OAuthFlowError, ProviderError, TwoFactorRequiredError
from oauth2_middleware.client.grants import PasswordWithTfaGrant, get_grant
from oauth2_middleware.client.provider import PlatformProvider
from oauth2_middleware.client.settings import PlatformSettings
from oauth2_middleware.shared.auth import AccessToken

logger = logging.getLogger(__name__)


async def acquire_token(provider: PlatformProvider, grant_type: str, options: dict[str, Any]) -> AccessToken:
    """Acquire a token, asking for a one-time code if the provider wants one."""
    grant = PasswordWithTfaGrant() if grant_type == "password" else get_grant(grant_type)

    async with provider:
        try:
            return await provider.get_access_token(grant, options)
        except TwoFactorRequiredError:
            totp = click.prompt("Two-factor authentication code")
            return await provider.get_access_token(grant, {**options, PasswordWithTfaGrant.TOTP_OPTION: totp})


@click.command()
@click.option(
    "--grant",
    "grant_type",
    default="password",
    type=click.Choice(["password", "api_token", "client_credentials"]),
    help="Grant type to acquire the token with",
)
@click.option("--username", help="Username for the password grant")
@click.option("--password", help="Password for the password grant (prompted for when missing)")
@click.option("--api-token", help="API token for the api_token grant")
@click.option("--base-uri", help="Base URI of the accounts service (overrides OAUTH2_BASE_URI)")
@click.option("--client-id", help="OAuth2 client ID (overrides OAUTH2_CLIENT_ID)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(
    grant_type: str,
    username: str | None,
    password: str | None,
    api_token: str | None,
    base_uri: str | None,
    client_id: str | None,
    verbose: bool,
) -> None:
    """Acquire an OAuth2 access token and print it as JSON."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)

    overrides = {key: value for key, value in {"base_uri": base_uri, "client_id": client_id}.items() if value}
    try:
        settings = PlatformSettings(**overrides)
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    options: dict[str, Any] = {}
    if grant_type == "password":
        options["username"] = username or click.prompt("Username")
        options["password"] = password or click.prompt("Password", hide_input=True)
    elif grant_type == "api_token":
        options["api_token"] = api_token or click.prompt("API token", hide_input=True)

    try:
        token = anyio.run(acquire_token, PlatformProvider(settings), grant_type, options)
    except ProviderError as e:
        click.echo(f"Error: {e} ({e.error})", err=True)
        sys.exit(1)
    except OAuthFlowError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(token.model_dump_json(indent=2, exclude_none=True))
