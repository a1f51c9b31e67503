"""
OAuth 2.0 grant types.

A grant names the ``grant_type`` sent to the token endpoint and the parameters
the caller has to supply for it. Grants are looked up by name so that the
middleware's primary grant can come from configuration.
"""

from collections.abc import Mapping
from typing import Any, ClassVar

import httpx

from oauth2_middleware.client.errors import MissingGrantParameterError, ProtocolViolationError, UnknownGrantError


class Grant:
    """Base class for grant types."""

    name: ClassVar[str]
    required_parameters: ClassVar[tuple[str, ...]] = ()

    def prepare_request_parameters(self, defaults: Mapping[str, Any], options: Mapping[str, Any]) -> dict[str, Any]:
        """
        Build the token request body.

        Args:
            defaults: Client level parameters (client_id, client_secret, redirect_uri).
            options: Grant specific parameters supplied by the caller.

        Raises:
            MissingGrantParameterError: If a required parameter is missing.
        """
        for parameter in self.required_parameters:
            if options.get(parameter) in (None, ""):
                raise MissingGrantParameterError(self.name, parameter)

        params = {key: value for key, value in defaults.items() if value is not None}
        params.update({key: value for key, value in options.items() if value is not None})
        params["grant_type"] = self.name
        return params

    def prepare_request(self, request: httpx.Request, options: Mapping[str, Any]) -> httpx.Request:
        """Adjust the token request before it is sent."""
        return request

    def __str__(self) -> str:
        return self.name


class AuthorizationCodeGrant(Grant):
    # See https://datatracker.ietf.org/doc/html/rfc6749#section-4.1.3
    name = "authorization_code"
    required_parameters = ("code",)


class ClientCredentialsGrant(Grant):
    # See https://datatracker.ietf.org/doc/html/rfc6749#section-4.4.2
    name = "client_credentials"


class PasswordGrant(Grant):
    # See https://datatracker.ietf.org/doc/html/rfc6749#section-4.3.2
    name = "password"
    required_parameters = ("username", "password")


class RefreshTokenGrant(Grant):
    # See https://datatracker.ietf.org/doc/html/rfc6749#section-6
    name = "refresh_token"
    required_parameters = ("refresh_token",)


class ApiTokenGrant(Grant):
    """Exchanges a long-lived API token for an access token."""

    name = "api_token"
    required_parameters = ("api_token",)


class PasswordWithTfaGrant(PasswordGrant):
    """
    Password grant that can carry a time-based one-time code.

    The code is passed as the ``totp`` option and sent in the TFA header
    rather than in the request body.
    """

    TFA_HEADER: ClassVar[str] = "X-Drupal-TFA"
    TOTP_OPTION: ClassVar[str] = "totp"

    def prepare_request_parameters(self, defaults: Mapping[str, Any], options: Mapping[str, Any]) -> dict[str, Any]:
        options = {key: value for key, value in options.items() if key != self.TOTP_OPTION}
        return super().prepare_request_parameters(defaults, options)

    def prepare_request(self, request: httpx.Request, options: Mapping[str, Any]) -> httpx.Request:
        totp = options.get(self.TOTP_OPTION)
        if totp in (None, ""):
            return request
        return self.add_totp(request, totp)

    def add_totp(self, request: httpx.Request, totp: int | str) -> httpx.Request:
        """Send the one-time code in the TFA header. Only allowed over HTTPS."""
        if request.url.scheme != "https":
            raise ProtocolViolationError("Cannot add TOTP token to non-HTTPS request.")

        request.headers[self.TFA_HEADER] = str(totp)
        return request

    @classmethod
    def requires_otp(cls, response: httpx.Response) -> bool:
        """Check whether the response asks for a time-based one-time code."""
        return response.is_client_error and cls.TFA_HEADER in response.headers


_GRANTS: dict[str, type[Grant]] = {
    grant.name: grant
    for grant in (
        AuthorizationCodeGrant,
        ClientCredentialsGrant,
        PasswordGrant,
        RefreshTokenGrant,
        ApiTokenGrant,
    )
}


def get_grant(grant: "str | Grant") -> Grant:
    """Resolve a grant instance from its name."""
    if isinstance(grant, Grant):
        return grant

    try:
        return _GRANTS[grant]()
    except KeyError:
        raise UnknownGrantError(f"Unsupported grant type: {grant} (supported grant types are {sorted(_GRANTS)})")
